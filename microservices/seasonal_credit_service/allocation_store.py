"""
Allocation Store

Allocation records per tenant (or per tenant x application) under a
campaign, and their expiry state.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from .models import AllocationStatusEnum, SeasonalCreditAllocation, to_credits
from .protocols import AllocationRepositoryProtocol

logger = logging.getLogger(__name__)


class ExpiringAllocations:
    """
    Allocations due within a window, as a restartable async sequence.

    Each `async for` runs a fresh query, so iterating again gives a new
    snapshot of what is currently due.
    """

    def __init__(self, repository: AllocationRepositoryProtocol, within_days: int):
        self._repository = repository
        self.within_days = within_days

    async def snapshot(self) -> List[SeasonalCreditAllocation]:
        now = datetime.now(timezone.utc)
        return await self._repository.get_allocations_expiring_between(
            now, now + timedelta(days=self.within_days)
        )

    async def __aiter__(self) -> AsyncIterator[SeasonalCreditAllocation]:
        for allocation in await self.snapshot():
            yield allocation


class AllocationStore:
    """Creates and maintains allocation records"""

    def __init__(self, repository: AllocationRepositoryProtocol):
        self.repository = repository

    async def create_allocation(
        self,
        campaign_id: str,
        tenant_id: str,
        entity_id: str,
        expires_at: datetime,
        allocated_credits: Decimal = Decimal("0"),
        entity_type: Optional[str] = None,
        target_application: Optional[str] = None,
        distribution_status: AllocationStatusEnum = AllocationStatusEnum.COMPLETED,
        distribution_error: Optional[str] = None,
    ) -> SeasonalCreditAllocation:
        """
        Insert one allocation record.

        Completed allocations are active; failed ones carry the error and are
        created inactive so the expiry sweep never touches them.
        """
        now = datetime.now(timezone.utc)
        completed = distribution_status == AllocationStatusEnum.COMPLETED

        alloc_data = {
            "allocation_id": f"sc_alloc_{uuid.uuid4().hex[:20]}",
            "campaign_id": campaign_id,
            "tenant_id": tenant_id,
            "entity_id": entity_id,
            "entity_type": entity_type,
            "target_application": target_application,
            "allocated_credits": to_credits(allocated_credits),
            "used_credits": Decimal("0"),
            "expires_at": expires_at,
            "distribution_status": AllocationStatusEnum(distribution_status).value,
            "distribution_error": distribution_error,
            "is_active": completed,
            "is_expired": False,
            "allocated_at": now if completed else None,
            "created_at": now,
            "updated_at": now,
        }

        allocation = await self.repository.create_allocation(alloc_data)
        logger.debug(
            f"Created {alloc_data['distribution_status']} allocation {allocation.allocation_id} "
            f"for tenant {tenant_id} (campaign {campaign_id}, app {target_application or 'org'})"
        )
        return allocation

    async def mark_expired(self, allocation_id: str) -> bool:
        updated = await self.repository.mark_allocation_expired(allocation_id)
        if not updated:
            logger.warning(f"Allocation {allocation_id} was not active when marking expired")
        return updated

    async def extend_expiry(self, campaign_id: str, new_expires_at: datetime) -> int:
        """Set expires_at on every allocation of a campaign; returns rows updated"""
        count = await self.repository.update_campaign_allocations_expiry(campaign_id, new_expires_at)
        logger.info(f"Extended {count} allocations of campaign {campaign_id} to {new_expires_at.isoformat()}")
        return count

    def list_expiring(self, within_days: int) -> ExpiringAllocations:
        """Active, unexpired allocations with expires_at in [now, now + within_days], soonest first"""
        return ExpiringAllocations(self.repository, within_days)

    async def list_expired(self, now: Optional[datetime] = None) -> List[SeasonalCreditAllocation]:
        return await self.repository.get_expired_allocations(now or datetime.now(timezone.utc))

    async def list_by_tenant(self, tenant_id: str) -> List[SeasonalCreditAllocation]:
        return await self.repository.get_allocations_by_tenant(tenant_id)

    async def list_by_campaign(self, campaign_id: str) -> List[SeasonalCreditAllocation]:
        return await self.repository.get_allocations_by_campaign(campaign_id)

    async def mark_warned(self, allocation_id: str, warned_at: Optional[datetime] = None) -> bool:
        return await self.repository.mark_allocation_warned(
            allocation_id, warned_at or datetime.now(timezone.utc)
        )


__all__ = ["AllocationStore", "ExpiringAllocations"]
