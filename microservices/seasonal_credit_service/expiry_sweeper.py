"""
Expiry Sweeper

Reclaims unused credit from allocations past their expiry and warns tenants
about allocations that are about to expire.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from .allocation_store import AllocationStore
from .credit_ledger import CreditLedger
from .models import (
    ExpirySweepResult,
    ExpiryWarningResult,
    ExpiringAllocation,
    SeasonalCreditAllocation,
    SeasonalCreditCampaign,
    TransactionTypeEnum,
)
from .protocols import CampaignRepositoryProtocol, NotificationSinkProtocol

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_until(expires_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until expiry, rounded up"""
    now = now or datetime.now(timezone.utc)
    return math.ceil((expires_at - now).total_seconds() / SECONDS_PER_DAY)


class ExpirySweeper:
    """Expiry reversal and expiry warnings"""

    def __init__(
        self,
        allocation_store: AllocationStore,
        ledger: CreditLedger,
        campaign_repository: CampaignRepositoryProtocol,
        notification_sink: Optional[NotificationSinkProtocol] = None,
        warning_cooldown_hours: int = 0,
    ):
        self.allocation_store = allocation_store
        self.ledger = ledger
        self.campaign_repository = campaign_repository
        self.notification_sink = notification_sink
        self.warning_cooldown_hours = warning_cooldown_hours

    async def sweep_expired(self) -> ExpirySweepResult:
        """
        Expire every active allocation whose expires_at has passed and
        deduct its unused credit from the entity balance.

        Per-allocation failures are logged and skipped.
        """
        expired = await self.allocation_store.list_expired()
        processed_count = 0

        for allocation in expired:
            try:
                if await self._expire_one(allocation):
                    processed_count += 1
            except Exception as e:
                logger.error(f"Failed to process expiry for allocation {allocation.allocation_id}: {e}")

        logger.info(f"Processed {processed_count} of {len(expired)} expired allocations")
        return ExpirySweepResult(processed_count=processed_count, total_expired=len(expired))

    async def _expire_one(self, allocation: SeasonalCreditAllocation) -> bool:
        """Expire one allocation; False if a concurrent sweep already took it"""
        if not await self.allocation_store.mark_expired(allocation.allocation_id):
            logger.debug(f"Allocation {allocation.allocation_id} already expired by another sweep")
            return False

        unused = allocation.unused_credits
        if unused <= 0:
            logger.debug(f"Allocation {allocation.allocation_id} expired fully used")
            return True

        await self.ledger.apply_delta(
            allocation.tenant_id,
            allocation.entity_id,
            -unused,
            TransactionTypeEnum.EXPIRY,
            f"seasonal_expiry:{allocation.campaign_id}",
        )
        logger.info(
            f"Expired {unused} unused credits of allocation {allocation.allocation_id} "
            f"for tenant {allocation.tenant_id}"
        )
        return True

    async def get_expiring_allocations(self, days_ahead: int = 30) -> List[ExpiringAllocation]:
        """Allocations due within days_ahead, enriched with campaign data"""
        now = datetime.now(timezone.utc)
        campaigns: Dict[str, Optional[SeasonalCreditCampaign]] = {}
        result: List[ExpiringAllocation] = []

        async for allocation in self.allocation_store.list_expiring(days_ahead):
            if allocation.campaign_id not in campaigns:
                campaigns[allocation.campaign_id] = await self.campaign_repository.get_campaign_by_id(
                    allocation.campaign_id
                )
            campaign = campaigns[allocation.campaign_id]
            result.append(
                ExpiringAllocation(
                    **allocation.model_dump(),
                    campaign_name=campaign.campaign_name if campaign else None,
                    credit_type=campaign.credit_type.value if campaign else None,
                    campaign_description=campaign.description if campaign else None,
                    days_until_expiry=days_until(allocation.expires_at, now),
                )
            )

        return result

    def _recently_warned(self, allocation: SeasonalCreditAllocation, now: datetime) -> bool:
        if self.warning_cooldown_hours <= 0 or allocation.last_warned_at is None:
            return False
        return now - allocation.last_warned_at < timedelta(hours=self.warning_cooldown_hours)

    async def send_expiry_warnings(self, days_ahead: int = 7) -> ExpiryWarningResult:
        """
        Emit one warning per allocation due within days_ahead.

        Re-sends on every call unless a warning cooldown is configured.
        """
        expiring = await self.get_expiring_allocations(days_ahead)
        now = datetime.now(timezone.utc)
        emails_sent = 0

        for allocation in expiring:
            if self._recently_warned(allocation, now):
                logger.debug(f"Skipping warning for allocation {allocation.allocation_id}: within cooldown")
                continue
            try:
                await self._warn(allocation)
                emails_sent += 1
                if self.warning_cooldown_hours > 0:
                    await self.allocation_store.mark_warned(allocation.allocation_id, now)
            except Exception as e:
                logger.error(f"Failed to send expiry warning for allocation {allocation.allocation_id}: {e}")

        logger.info(f"Sent {emails_sent} expiry warnings ({len(expiring)} expiring)")
        return ExpiryWarningResult(emails_sent=emails_sent, total_expiring=len(expiring))

    async def _warn(self, allocation: ExpiringAllocation) -> None:
        if not self.notification_sink:
            return
        credits = format(Decimal(allocation.allocated_credits).normalize(), "f")
        campaign_name = allocation.campaign_name or ""
        await self.notification_sink.emit(
            tenant_id=allocation.tenant_id,
            title=f"Credits Expiring Soon: {campaign_name}",
            message=(
                f"Your {credits} credits from {campaign_name} will expire in "
                f"{allocation.days_until_expiry} days. "
                f"Use them before {allocation.expires_at.date().isoformat()}!"
            ),
            action_url=f"/credits?campaign={allocation.campaign_id}",
            metadata={
                "campaign_id": allocation.campaign_id,
                "allocation_id": allocation.allocation_id,
                "expires_at": allocation.expires_at.isoformat(),
                "days_until_expiry": allocation.days_until_expiry,
            },
        )


__all__ = ["ExpirySweeper", "days_until"]
