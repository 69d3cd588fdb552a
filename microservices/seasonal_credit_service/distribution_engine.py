"""
Distribution Engine

Turns a pending campaign into per-tenant allocations and ledger credits.
One tenant's failure never stops the batch; outcomes are folded into the
campaign's final status once every tenant has been processed.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .allocation_store import AllocationStore
from .campaign_lifecycle import CampaignLifecycleManager
from .credit_ledger import CreditLedger
from .models import (
    AllocationStatusEnum,
    ApplicationSpecificAllocation,
    DistributionMethodEnum,
    DistributionResult,
    FailedTenant,
    SeasonalCreditCampaign,
    TransactionTypeEnum,
    to_credits,
)
from .protocols import (
    NotificationError,
    NotificationSinkProtocol,
    TenantDirectoryProtocol,
    TenantEntityNotFoundError,
)

logger = logging.getLogger(__name__)

NO_PRIMARY_ORGANIZATION = "No primary organization found"
ZERO_SHARE = "Credit share rounds to zero"
DEFAULT_NOTIFICATION_TEMPLATE = "You've received {creditAmount} free credits from the {campaignName} campaign!"


@dataclass(frozen=True)
class TenantOutcome:
    """Result of processing one tenant"""
    tenant_id: str
    success: bool
    credits: Decimal = Decimal("0")
    error: Optional[str] = None


def credits_per_tenant(campaign: SeasonalCreditCampaign, tenant_count: int) -> Decimal:
    """Amount each target tenant receives"""
    if campaign.credits_per_tenant is not None:
        return to_credits(campaign.credits_per_tenant)
    if campaign.distribution_method == DistributionMethodEnum.EQUAL and tenant_count > 0:
        return to_credits(campaign.total_credits / tenant_count)
    return to_credits(campaign.total_credits)


def split_across_applications(amount: Decimal, applications: List[str]) -> Dict[str, Decimal]:
    """
    Split an amount evenly across applications.

    Shares are rounded down; the remainder goes to the first application so
    the shares always sum to the amount.
    """
    if not applications:
        return {}
    amount = to_credits(amount)
    share = to_credits(amount / len(applications))
    shares = {app: share for app in applications}
    shares[applications[0]] += amount - share * len(applications)
    return shares


def render_notification(campaign: SeasonalCreditCampaign, credit_amount: Decimal) -> str:
    template = campaign.notification_template or DEFAULT_NOTIFICATION_TEMPLATE
    return (
        template
        .replace("{creditAmount}", format(credit_amount.normalize(), "f"))
        .replace("{campaignName}", campaign.campaign_name)
    )


class DistributionEngine:
    """Drives a campaign distribution run"""

    def __init__(
        self,
        lifecycle: CampaignLifecycleManager,
        allocation_store: AllocationStore,
        ledger: CreditLedger,
        tenant_directory: TenantDirectoryProtocol,
        notification_sink: Optional[NotificationSinkProtocol] = None,
        concurrency: int = 10,
    ):
        self.lifecycle = lifecycle
        self.allocation_store = allocation_store
        self.ledger = ledger
        self.tenant_directory = tenant_directory
        self.notification_sink = notification_sink
        self.concurrency = max(1, int(concurrency))

    async def distribute(self, campaign_id: str) -> DistributionResult:
        """
        Distribute a pending campaign to its target tenants.

        Raises:
            CampaignNotFoundError: If campaign not found
            CampaignStateConflictError: If campaign is not pending

        Any other error after the campaign entered processing marks it failed
        and is re-raised.
        """
        # Atomic pending -> processing; the only serialization point per campaign
        campaign = await self.lifecycle.begin_distribution(campaign_id)

        outcomes: List[TenantOutcome] = []
        try:
            tenant_ids = await self._resolve_targets(campaign)
            amount = credits_per_tenant(campaign, len(tenant_ids))
            logger.info(
                f"Starting distribution of campaign {campaign_id} ({campaign.campaign_name}) "
                f"to {len(tenant_ids)} tenants, {amount} credits each"
            )

            if tenant_ids and amount <= 0:
                logger.warning(
                    f"Campaign {campaign_id}: {campaign.total_credits} credits split across "
                    f"{len(tenant_ids)} tenants rounds to 0 each; nothing distributed"
                )
                outcomes = [
                    TenantOutcome(tenant_id=tid, success=False, error=ZERO_SHARE)
                    for tid in tenant_ids
                ]
            else:
                if campaign.credits_per_tenant is None and campaign.distribution_method == DistributionMethodEnum.EQUAL and tenant_ids:
                    residue = campaign.total_credits - amount * len(tenant_ids)
                    if residue > 0:
                        logger.info(f"Campaign {campaign_id}: {residue} credits left undistributed by rounding")

                semaphore = asyncio.Semaphore(self.concurrency)

                async def bounded(tenant_id: str) -> TenantOutcome:
                    async with semaphore:
                        return await self._process_tenant(campaign, tenant_id, amount)

                outcomes = await asyncio.gather(*(bounded(tid) for tid in tenant_ids))

            distributed_count = sum(1 for o in outcomes if o.success)
            failed = [FailedTenant(tenant_id=o.tenant_id, error=o.error or "") for o in outcomes if not o.success]

            status = await self.lifecycle.finalize(campaign_id, distributed_count, len(failed))
        except Exception as e:
            logger.error(f"Distribution of campaign {campaign_id} aborted: {e}")
            await self._abort(campaign_id, outcomes)
            raise

        logger.info(
            f"Distribution of campaign {campaign_id} complete: "
            f"{distributed_count} successful, {len(failed)} failed"
        )

        return DistributionResult(
            campaign_id=campaign_id,
            distributed_count=distributed_count,
            failed_count=len(failed),
            status=status,
            failed_tenants=failed or None,
        )

    async def _abort(self, campaign_id: str, outcomes: List[TenantOutcome]) -> None:
        distributed_count = sum(1 for o in outcomes if o.success)
        try:
            await self.lifecycle.abort_distribution(
                campaign_id, distributed_count, len(outcomes) - distributed_count
            )
        except Exception as e:
            logger.error(f"Could not mark campaign {campaign_id} failed; it stays processing: {e}")

    async def _resolve_targets(self, campaign: SeasonalCreditCampaign) -> List[str]:
        if campaign.target_all_tenants:
            tenant_ids = await self.tenant_directory.list_active_tenant_ids()
        else:
            tenant_ids = campaign.target_tenant_ids
        # A tenant is credited at most once per run
        return list(dict.fromkeys(tid for tid in tenant_ids if tid))

    async def _process_tenant(
        self, campaign: SeasonalCreditCampaign, tenant_id: str, amount: Decimal
    ) -> TenantOutcome:
        try:
            entity = await self.tenant_directory.get_primary_organization_entity(tenant_id)
            if not entity:
                raise TenantEntityNotFoundError(NO_PRIMARY_ORGANIZATION, tenant_id=tenant_id)

            entity_id = entity["entity_id"]
            entity_type = entity.get("entity_type") or "organization"
            operation_code = f"seasonal_campaign:{campaign.campaign_id}"

            # One ledger mutation per tenant, whatever the allocation mode
            await self.ledger.apply_delta(
                tenant_id, entity_id, amount, TransactionTypeEnum.SEASONAL_CAMPAIGN, operation_code
            )

            if isinstance(campaign.allocation, ApplicationSpecificAllocation):
                shares = split_across_applications(amount, campaign.allocation.applications)
                for application, share in shares.items():
                    await self.allocation_store.create_allocation(
                        campaign_id=campaign.campaign_id,
                        tenant_id=tenant_id,
                        entity_id=entity_id,
                        entity_type=entity_type,
                        target_application=application,
                        allocated_credits=share,
                        expires_at=campaign.expires_at,
                    )
                logger.info(f"Created {len(shares)} application-specific allocations for tenant {tenant_id}")
            else:
                await self.allocation_store.create_allocation(
                    campaign_id=campaign.campaign_id,
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    entity_type=entity_type,
                    allocated_credits=amount,
                    expires_at=campaign.expires_at,
                )

            if campaign.send_notifications:
                await self._notify(campaign, tenant_id, amount)

            logger.info(f"Distributed {amount} credits to tenant {tenant_id}")
            return TenantOutcome(tenant_id=tenant_id, success=True, credits=amount)

        except Exception as e:
            if isinstance(e, TenantEntityNotFoundError):
                logger.warning(f"No primary organization found for tenant {tenant_id}")
            else:
                logger.error(f"Failed to distribute credits to tenant {tenant_id}: {e}")
            await self._record_failure(campaign, tenant_id, str(e))
            return TenantOutcome(tenant_id=tenant_id, success=False, error=str(e))

    async def _record_failure(self, campaign: SeasonalCreditCampaign, tenant_id: str, error: str) -> None:
        try:
            await self.allocation_store.create_allocation(
                campaign_id=campaign.campaign_id,
                tenant_id=tenant_id,
                entity_id=tenant_id,
                allocated_credits=Decimal("0"),
                expires_at=campaign.expires_at,
                distribution_status=AllocationStatusEnum.FAILED,
                distribution_error=error,
            )
        except Exception as e:
            # Still counted as failed; the error survives in the log
            logger.error(
                f"Could not record failed allocation for tenant {tenant_id} "
                f"(campaign {campaign.campaign_id}, error: {error}): {e}"
            )

    async def _notify(self, campaign: SeasonalCreditCampaign, tenant_id: str, amount: Decimal) -> None:
        if not self.notification_sink:
            return
        metadata: Dict[str, Any] = {
            "campaign_id": campaign.campaign_id,
            "campaign_name": campaign.campaign_name,
            "credit_amount": str(amount),
            "expires_at": campaign.expires_at.isoformat(),
        }
        try:
            await self.notification_sink.emit(
                tenant_id=tenant_id,
                title=f"New Credits Available: {campaign.campaign_name}",
                message=render_notification(campaign, amount),
                action_url=f"/credits?campaign={campaign.campaign_id}",
                metadata=metadata,
            )
        except NotificationError as e:
            logger.warning(f"Notification for tenant {tenant_id} failed: {e}")
        except Exception as e:
            logger.warning(f"Unexpected notification failure for tenant {tenant_id}: {e}")


__all__ = [
    "DistributionEngine",
    "TenantOutcome",
    "credits_per_tenant",
    "split_across_applications",
    "render_notification",
]
