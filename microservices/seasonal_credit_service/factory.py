"""
Seasonal Credit Service Factory

Factory for creating SeasonalCreditService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config_manager import ConfigManager

from .seasonal_credit_repository import SeasonalCreditRepository
from .seasonal_credit_service import SeasonalCreditService

logger = logging.getLogger(__name__)


def create_seasonal_credit_service(
    config: Optional[ConfigManager] = None,
    tenant_directory=None,
    notification_sink=None,
) -> SeasonalCreditService:
    """
    Create SeasonalCreditService with all real dependencies

    Args:
        config: Optional config manager (creates default if not provided)
        tenant_directory: Optional tenant directory (creates default if not provided)
        notification_sink: Optional notification sink (creates default if not provided)

    Returns:
        Fully initialized SeasonalCreditService instance
    """
    if config is None:
        config = ConfigManager("seasonal_credit_service")

    service_config = config.get_service_config()

    # One repository serves campaigns, allocations and the ledger
    repository = SeasonalCreditRepository(config=config)

    if tenant_directory is None:
        from .clients.tenant_client import TenantDirectoryClient

        tenant_directory = TenantDirectoryClient(config=config)
        logger.info("✅ TenantDirectoryClient initialized for seasonal credit service")

    if notification_sink is None:
        try:
            from .clients.notification_client import NotificationClient

            notification_sink = NotificationClient(config=config)
            logger.info("✅ NotificationClient initialized for seasonal credit service")
        except Exception as e:
            logger.warning(f"⚠️ Failed to initialize NotificationClient: {e}")
            logger.warning("Seasonal credit service will operate without notifications")

    return SeasonalCreditService(
        campaign_repository=repository,
        allocation_repository=repository,
        ledger_repository=repository,
        tenant_directory=tenant_directory,
        notification_sink=notification_sink,
        distribution_concurrency=service_config.distribution_concurrency,
        warning_cooldown_hours=service_config.warning_cooldown_hours,
    )


__all__ = ["create_seasonal_credit_service"]
