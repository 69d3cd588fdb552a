"""
Base Service Client for Internal Microservice Communication

Peer service clients subclass this and get:
1. Base URL discovery through ConfigManager (<SERVICE>_HOST / <SERVICE>_PORT)
2. Internal service authentication headers on every request
3. A shared httpx.AsyncClient with a request timeout

Example:
    class TenantDirectoryClient(BaseServiceClient):
        service_name = "tenant_service"
        default_port = 8213

        async def list_active_tenant_ids(self):
            data = await self.get_json("/api/v1/tenants")
            return [t["tenant_id"] for t in data["tenants"]]
"""

import logging
from abc import ABC
from typing import Any, Dict, Optional

import httpx

from core.config_manager import ConfigManager

logger = logging.getLogger(__name__)


class BaseServiceClient(ABC):
    """Base class for peer service clients"""

    # Subclasses define these
    service_name: str = None
    default_port: int = None

    def __init__(
        self,
        base_url: Optional[str] = None,
        config: Optional[ConfigManager] = None,
        use_internal_auth: bool = True,
        timeout: float = 30.0,
    ):
        """
        Args:
            base_url: Peer base URL; discovered from config when omitted
            config: ConfigManager used for discovery
            use_internal_auth: Send X-Internal-Service headers
            timeout: Per-request timeout in seconds
        """
        if not self.service_name:
            raise ValueError(f"{self.__class__.__name__} must define 'service_name'")

        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            config = config or ConfigManager(self.service_name)
            host, port = config.discover_service(
                service_name=self.service_name,
                default_host="localhost",
                default_port=self.default_port or 8000,
            )
            self.base_url = f"http://{host}:{port}"

        headers = {"User-Agent": f"seasonal-credit-client/{self.service_name}"}
        if use_internal_auth:
            from core.internal_service_auth import InternalServiceAuth
            headers.update(InternalServiceAuth.get_internal_service_headers())

        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)
        logger.debug(f"{self.service_name} client targets {self.base_url}")

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
        logger.debug(f"Closed {self.service_name} client")

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await self.client.get(f"{self.base_url}{path}", params=params)

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        not_found_ok: bool = False,
    ) -> Any:
        """
        GET a JSON document.

        Returns:
            Decoded body, or None on 404 when not_found_ok is set

        Raises:
            httpx.HTTPStatusError: On any other non-2xx response
            httpx.HTTPError: On transport failure
        """
        response = await self.get(path, params=params)
        if not_found_ok and response.status_code == 404:
            return None
        if response.is_error:
            logger.error(
                f"{self.service_name} GET {path} failed with {response.status_code}: {response.text}"
            )
        response.raise_for_status()
        return response.json()


__all__ = ["BaseServiceClient"]
