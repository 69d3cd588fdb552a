"""
Internal Service Authentication

Shared-secret headers for service-to-service calls, and a FastAPI dependency
that accepts either a peer service or an authenticated caller (user-id header
set by the gateway).
"""

import logging
import os
from typing import Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

# Must be overridden in production
INTERNAL_SERVICE_SECRET = os.getenv("INTERNAL_SERVICE_SECRET", "dev-internal-secret-change-in-production")
INTERNAL_SERVICE_HEADER = "X-Internal-Service"
INTERNAL_SERVICE_SECRET_HEADER = "X-Internal-Service-Secret"


class InternalServiceAuth:
    """Helpers for internal service authentication"""

    @staticmethod
    def get_internal_service_headers() -> dict:
        """Headers a client attaches to identify itself as an internal service"""
        return {
            INTERNAL_SERVICE_HEADER: "true",
            INTERNAL_SERVICE_SECRET_HEADER: INTERNAL_SERVICE_SECRET,
        }

    @staticmethod
    def is_internal_service_request(request: Request) -> bool:
        """True when both internal headers are present and the secret matches"""
        internal_service = request.headers.get(INTERNAL_SERVICE_HEADER)
        secret = request.headers.get(INTERNAL_SERVICE_SECRET_HEADER)

        if internal_service == "true" and secret == INTERNAL_SERVICE_SECRET:
            logger.debug("Valid internal service request detected")
            return True

        return False

    @staticmethod
    def get_service_user_id() -> str:
        """Caller id recorded for internal service requests"""
        return "internal-service"


async def require_auth_or_internal_service(request: Request) -> str:
    """
    FastAPI dependency: resolve the caller id.

    Returns:
        user_id from the user-id header, or "internal-service"

    Raises:
        HTTPException: 401 when neither form of authentication is present
    """
    if InternalServiceAuth.is_internal_service_request(request):
        return InternalServiceAuth.get_service_user_id()

    user_id: Optional[str] = request.headers.get("user-id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required",
        )

    return user_id


__all__ = [
    "InternalServiceAuth",
    "require_auth_or_internal_service",
    "INTERNAL_SERVICE_HEADER",
    "INTERNAL_SERVICE_SECRET_HEADER",
]
