"""
Seasonal Credit Service Clients

Clients for calling other microservices.
"""

from .tenant_client import TenantDirectoryClient
from .notification_client import NotificationClient

__all__ = [
    "TenantDirectoryClient",
    "NotificationClient",
]
