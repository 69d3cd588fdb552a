"""
Tenant Directory Client

Client for calling tenant_service to enumerate active tenants and resolve
each tenant's primary organization entity.
"""

import logging
from typing import Any, Dict, List, Optional

from core.service_client_base import BaseServiceClient

logger = logging.getLogger(__name__)


class TenantDirectoryClient(BaseServiceClient):
    """Client for tenant_service (implements TenantDirectoryProtocol)"""

    service_name = "tenant_service"
    default_port = 8213

    async def list_active_tenant_ids(self) -> List[str]:
        """
        Get ids of all active tenants.

        Raises:
            httpx.HTTPError: If the directory cannot be reached
        """
        data = await self.get_json("/api/v1/tenants", params={"is_active": "true", "fields": "tenant_id"})
        tenants = data.get("tenants", []) if isinstance(data, dict) else data
        tenant_ids = [t["tenant_id"] if isinstance(t, dict) else str(t) for t in tenants]
        logger.debug(f"tenant_service returned {len(tenant_ids)} active tenants")
        return tenant_ids

    async def get_primary_organization_entity(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        """
        Get the tenant's primary organization entity.

        Returns:
            Entity dict with entity_id and entity_type, or None if the tenant
            has no primary organization
        """
        entity = await self.get_json(
            f"/api/v1/tenants/{tenant_id}/primary-organization", not_found_ok=True
        )
        if not entity or not entity.get("entity_id"):
            logger.warning(f"No primary organization for tenant {tenant_id}")
            return None
        entity.setdefault("entity_type", "organization")
        return entity


__all__ = ["TenantDirectoryClient"]
