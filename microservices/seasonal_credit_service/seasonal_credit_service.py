"""
Seasonal Credit Service - Business Logic Layer

Composes the campaign lifecycle, distribution engine, allocation store,
credit ledger and expiry sweeper behind one entry point for the host:
- Campaign creation, listing and status
- Distribution to tenants (primary organization or per application)
- Expiry extension, warnings and expiry processing
"""

import logging
from typing import Any, Dict, List, Optional

from .allocation_store import AllocationStore
from .campaign_lifecycle import CampaignLifecycleManager
from .credit_ledger import CreditLedger
from .distribution_engine import DistributionEngine
from .expiry_sweeper import ExpirySweeper
from .models import (
    CampaignAllocation,
    CampaignStatusResponse,
    CreditBalance,
    CreditTransaction,
    DistributionResult,
    ExpiringAllocation,
    ExpiryExtensionResult,
    ExpirySweepResult,
    ExpiryWarningResult,
    SeasonalCreditCampaign,
)
from .protocols import (
    AllocationRepositoryProtocol,
    CampaignRepositoryProtocol,
    LedgerRepositoryProtocol,
    NotificationSinkProtocol,
    TenantDirectoryProtocol,
)

logger = logging.getLogger(__name__)


class SeasonalCreditService:
    """
    Seasonal Credit Service - Core business logic

    All persistence goes through the injected repositories; tenant lookup and
    notification delivery go through the injected collaborators.
    """

    def __init__(
        self,
        campaign_repository: CampaignRepositoryProtocol,
        allocation_repository: AllocationRepositoryProtocol,
        ledger_repository: LedgerRepositoryProtocol,
        tenant_directory: TenantDirectoryProtocol,
        notification_sink: Optional[NotificationSinkProtocol] = None,
        distribution_concurrency: int = 10,
        warning_cooldown_hours: int = 0,
    ):
        """
        Initialize seasonal credit service with dependencies.

        Args:
            campaign_repository: Campaign persistence
            allocation_repository: Allocation persistence
            ledger_repository: Balance and transaction persistence
            tenant_directory: Tenant / primary organization lookup
            notification_sink: Notification delivery (optional)
            distribution_concurrency: Max tenants processed at once
            warning_cooldown_hours: Skip re-warning within this window (0 = always warn)
        """
        self.campaign_repository = campaign_repository
        self.allocation_repository = allocation_repository
        self.ledger_repository = ledger_repository
        self.tenant_directory = tenant_directory
        self.notification_sink = notification_sink

        self.allocation_store = AllocationStore(allocation_repository)
        self.ledger = CreditLedger(ledger_repository)
        self.lifecycle = CampaignLifecycleManager(campaign_repository, self.allocation_store)
        self.engine = DistributionEngine(
            lifecycle=self.lifecycle,
            allocation_store=self.allocation_store,
            ledger=self.ledger,
            tenant_directory=tenant_directory,
            notification_sink=notification_sink,
            concurrency=distribution_concurrency,
        )
        self.sweeper = ExpirySweeper(
            allocation_store=self.allocation_store,
            ledger=self.ledger,
            campaign_repository=campaign_repository,
            notification_sink=notification_sink,
            warning_cooldown_hours=warning_cooldown_hours,
        )

    async def close(self):
        """Close peer clients that hold connections (the tenant directory's HTTP client)"""
        for collaborator in (self.tenant_directory, self.notification_sink):
            close = getattr(collaborator, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(f"Failed to close {collaborator.__class__.__name__}: {e}")

    # ====================
    # Campaigns
    # ====================

    async def create_campaign(
        self, campaign_data: Dict[str, Any], created_by: Optional[str] = None
    ) -> SeasonalCreditCampaign:
        return await self.lifecycle.create(campaign_data, created_by=created_by)

    async def get_campaign(self, campaign_id: str) -> SeasonalCreditCampaign:
        return await self.lifecycle.get_campaign(campaign_id)

    async def list_campaigns(
        self,
        is_active: Optional[bool] = None,
        distribution_status: Optional[str] = None,
    ) -> List[SeasonalCreditCampaign]:
        return await self.lifecycle.list_campaigns(is_active, distribution_status)

    async def get_distribution_status(self, campaign_id: str) -> CampaignStatusResponse:
        return await self.lifecycle.get_distribution_status(campaign_id)

    async def extend_campaign_expiry(self, campaign_id: str, additional_days: int) -> ExpiryExtensionResult:
        return await self.lifecycle.extend_expiry(campaign_id, additional_days)

    def get_credit_types(self) -> List[Dict[str, Any]]:
        return self.lifecycle.credit_types()

    # ====================
    # Distribution
    # ====================

    async def distribute_campaign(self, campaign_id: str) -> DistributionResult:
        return await self.engine.distribute(campaign_id)

    # ====================
    # Allocations, ledger and expiry
    # ====================

    async def get_tenant_allocations(self, tenant_id: str) -> List[CampaignAllocation]:
        return await self.lifecycle.get_tenant_allocations(tenant_id)

    async def get_expiring_allocations(self, days_ahead: int = 30) -> List[ExpiringAllocation]:
        return await self.sweeper.get_expiring_allocations(days_ahead)

    async def send_expiry_warnings(self, days_ahead: int = 7) -> ExpiryWarningResult:
        return await self.sweeper.send_expiry_warnings(days_ahead)

    async def process_expiries(self) -> ExpirySweepResult:
        return await self.sweeper.sweep_expired()

    async def get_balance(self, tenant_id: str, entity_id: str) -> Optional[CreditBalance]:
        return await self.ledger.get_balance(tenant_id, entity_id)

    async def get_transactions(
        self, tenant_id: str, entity_id: Optional[str] = None
    ) -> List[CreditTransaction]:
        return await self.ledger.list_transactions(tenant_id, entity_id)


__all__ = ["SeasonalCreditService"]
