"""
Notification Service Client

Client for calling notification_service to deliver in-app notifications
about distributed and expiring credits.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config_manager import ConfigManager

from ..protocols import NotificationError

logger = logging.getLogger(__name__)


class NotificationClient:
    """Client for notification_service (implements NotificationSinkProtocol)"""

    def __init__(self, config: Optional[ConfigManager] = None):
        if config is None:
            config = ConfigManager("seasonal_credit_service")

        host, port = config.discover_service(
            service_name='notification_service',
            default_host='localhost',
            default_port=8206,
            env_host_key='NOTIFICATION_SERVICE_HOST',
            env_port_key='NOTIFICATION_SERVICE_PORT'
        )
        self.base_url = f"http://{host}:{port}"
        self.timeout = 10.0

    async def emit(
        self,
        tenant_id: str,
        title: str,
        message: str,
        action_url: str,
        metadata: Dict[str, Any],
    ) -> None:
        """
        Send an in-app notification to a tenant.

        Raises:
            NotificationError: If the notification could not be delivered
        """
        request_data = {
            "tenant_id": tenant_id,
            "channel_type": "in_app",
            "content": {
                "title": title,
                "message": message,
                "action_url": action_url,
                "action_label": "View Credits",
            },
            "metadata": metadata,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/api/v1/notifications",
                    json=request_data,
                )
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(f"Error sending notification to tenant {tenant_id}: {e.response.text}")
            raise NotificationError(f"Notification rejected: {e.response.status_code}") from e

        except httpx.HTTPError as e:
            logger.error(f"Error sending notification to tenant {tenant_id}: {e}")
            raise NotificationError(str(e)) from e


__all__ = ["NotificationClient"]
