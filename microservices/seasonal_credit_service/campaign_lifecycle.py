"""
Campaign Lifecycle Manager

Validates and persists campaign definitions and owns the distribution
status machine:

    pending -> processing -> completed | failed | partial_success

Terminal states are never left; expiry extension does not touch
distribution_status.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .allocation_store import AllocationStore
from .models import (
    CREDIT_TYPE_CATALOGUE,
    PRIMARY_ORG_APPLICATIONS,
    VALID_APPLICATION_CODES,
    AllocationModeEnum,
    AllocationStatusEnum,
    CampaignAllocation,
    CampaignStatusEnum,
    CampaignStatusResponse,
    CreditTypeEnum,
    DistributionSummary,
    ExpiryExtensionResult,
    SeasonalCreditCampaign,
)
from .protocols import (
    CampaignNotFoundError,
    CampaignRepositoryProtocol,
    CampaignStateConflictError,
    CampaignValidationError,
)

logger = logging.getLogger(__name__)

MAX_CAMPAIGN_NAME_LENGTH = 255


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    # NaN and Infinity are not amounts
    return parsed if parsed.is_finite() else None


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_final_status(distributed_count: int, failed_count: int) -> CampaignStatusEnum:
    """Terminal status from aggregate distribution counts"""
    if failed_count == 0:
        return CampaignStatusEnum.COMPLETED
    if distributed_count == 0:
        return CampaignStatusEnum.FAILED
    return CampaignStatusEnum.PARTIAL_SUCCESS


class CampaignLifecycleManager:
    """Campaign validation, persistence and status transitions"""

    VALID_CREDIT_TYPES = {e.value for e in CreditTypeEnum}

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        allocation_store: AllocationStore,
    ):
        self.repository = repository
        self.allocation_store = allocation_store

    # ====================
    # Validation and creation
    # ====================

    def validate(self, campaign_data: Dict[str, Any]) -> None:
        """
        Validate raw campaign input.

        All problems are collected before raising, so the caller sees every
        field-level message at once.

        Raises:
            CampaignValidationError: with the list of messages
        """
        errors: List[str] = []

        name = str(campaign_data.get("campaign_name") or "").strip()
        if not name or len(name) > MAX_CAMPAIGN_NAME_LENGTH:
            errors.append(f"Campaign name must be between 1-{MAX_CAMPAIGN_NAME_LENGTH} characters")

        credit_type = campaign_data.get("credit_type")
        if hasattr(credit_type, "value"):
            credit_type = credit_type.value
        if credit_type not in self.VALID_CREDIT_TYPES:
            errors.append(
                "Invalid credit type. Must be one of: "
                + ", ".join(e.value for e in CreditTypeEnum)
            )

        total_credits = _as_decimal(campaign_data.get("total_credits"))
        if total_credits is None or total_credits <= 0:
            errors.append("Total credits must be greater than 0")

        credits_per_tenant = campaign_data.get("credits_per_tenant")
        if credits_per_tenant is not None:
            per_tenant = _as_decimal(credits_per_tenant)
            if per_tenant is None or per_tenant <= 0:
                errors.append("Credits per tenant must be greater than 0 when provided")

        expires_at = _as_datetime(campaign_data.get("expires_at"))
        if expires_at is None or expires_at <= datetime.now(timezone.utc):
            errors.append("Expiry date must be in the future")

        target_ids = campaign_data.get("target_tenant_ids") or []
        if not campaign_data.get("target_all_tenants") and not target_ids:
            errors.append("Must either target all tenants or specify target tenant IDs")

        mode = campaign_data.get("allocation_mode") or AllocationModeEnum.PRIMARY_ORG.value
        if hasattr(mode, "value"):
            mode = mode.value
        if mode not in {e.value for e in AllocationModeEnum}:
            errors.append(
                "Invalid allocation mode. Must be one of: "
                + ", ".join(e.value for e in AllocationModeEnum)
            )
        elif mode == AllocationModeEnum.APPLICATION_SPECIFIC.value:
            applications = campaign_data.get("target_applications") or []
            if not applications:
                errors.append(
                    'targetApplications is required when allocationMode is "application_specific"'
                )
            else:
                invalid = [app for app in applications if app not in VALID_APPLICATION_CODES]
                if invalid:
                    errors.append(
                        f"Invalid application codes: {', '.join(invalid)}. "
                        f"Valid codes: {', '.join(VALID_APPLICATION_CODES)}"
                    )

        if errors:
            logger.info(f"Campaign validation failed: {errors}")
            raise CampaignValidationError(errors)

    async def create(
        self, campaign_data: Dict[str, Any], created_by: Optional[str] = None
    ) -> SeasonalCreditCampaign:
        """
        Validate and persist a campaign in pending state.

        Raises:
            CampaignValidationError: If validation fails
        """
        self.validate(campaign_data)

        mode = campaign_data.get("allocation_mode") or AllocationModeEnum.PRIMARY_ORG.value
        mode = AllocationModeEnum(getattr(mode, "value", mode))
        requested_apps = list(campaign_data.get("target_applications") or [])

        if mode == AllocationModeEnum.APPLICATION_SPECIFIC:
            # Order-preserving de-duplication
            requested_apps = list(dict.fromkeys(requested_apps))
            stored_apps = requested_apps
        else:
            stored_apps = list(PRIMARY_ORG_APPLICATIONS)

        credit_type = campaign_data["credit_type"]
        now = datetime.now(timezone.utc)
        campaign_id = f"sc_camp_{uuid.uuid4().hex[:20]}"

        record = {
            "campaign_id": campaign_id,
            "campaign_name": str(campaign_data["campaign_name"]).strip(),
            "description": campaign_data.get("description"),
            "credit_type": getattr(credit_type, "value", credit_type),
            "total_credits": _as_decimal(campaign_data["total_credits"]),
            "credits_per_tenant": _as_decimal(campaign_data.get("credits_per_tenant")),
            "distribution_method": getattr(
                campaign_data.get("distribution_method"), "value",
                campaign_data.get("distribution_method") or "equal",
            ),
            "target_all_tenants": bool(campaign_data.get("target_all_tenants")),
            "target_tenant_ids": list(dict.fromkeys(campaign_data.get("target_tenant_ids") or [])),
            "allocation_mode": mode.value,
            "target_applications": stored_apps,
            "expires_at": _as_datetime(campaign_data["expires_at"]),
            "send_notifications": bool(campaign_data.get("send_notifications", True)),
            "notification_template": campaign_data.get("notification_template"),
            "distribution_status": CampaignStatusEnum.PENDING.value,
            "distributed_count": 0,
            "failed_count": 0,
            "is_active": True,
            "created_by": created_by,
            "metadata": {
                **(campaign_data.get("metadata") or {}),
                "original_target_applications": requested_apps,
            },
            "created_at": now,
            "updated_at": now,
        }

        campaign = await self.repository.create_campaign(record)
        logger.info(
            f"Created seasonal credit campaign {campaign_id} "
            f"(mode={mode.value}, applications={stored_apps})"
        )
        return campaign

    # ====================
    # Queries
    # ====================

    async def get_campaign(self, campaign_id: str) -> SeasonalCreditCampaign:
        """
        Raises:
            CampaignNotFoundError: If campaign not found
        """
        campaign = await self.repository.get_campaign_by_id(campaign_id)
        if not campaign:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)
        return campaign

    async def list_campaigns(
        self,
        is_active: Optional[bool] = None,
        distribution_status: Optional[str] = None,
    ) -> List[SeasonalCreditCampaign]:
        return await self.repository.list_campaigns(
            is_active=is_active, distribution_status=distribution_status
        )

    async def get_distribution_status(self, campaign_id: str) -> CampaignStatusResponse:
        """Campaign, its allocations and a distribution summary"""
        campaign = await self.get_campaign(campaign_id)
        allocations = await self.allocation_store.list_by_campaign(campaign_id)

        distributed = sum((a.allocated_credits for a in allocations), Decimal("0"))
        used = sum((a.used_credits for a in allocations), Decimal("0"))
        utilization = f"{(used / distributed * 100):.2f}%" if distributed > 0 else "0%"

        summary = DistributionSummary(
            total_targeted="All Tenants" if campaign.target_all_tenants else len(campaign.target_tenant_ids),
            successfully_distributed=sum(
                1 for a in allocations if a.distribution_status == AllocationStatusEnum.COMPLETED
            ),
            failed_distributions=sum(
                1 for a in allocations if a.distribution_status == AllocationStatusEnum.FAILED
            ),
            pending_distributions=sum(
                1 for a in allocations if a.distribution_status == AllocationStatusEnum.PENDING
            ),
            total_credits_distributed=distributed,
            total_credits_used=used,
            utilization_rate=utilization,
        )
        return CampaignStatusResponse(campaign=campaign, allocations=allocations, summary=summary)

    async def get_tenant_allocations(self, tenant_id: str) -> List[CampaignAllocation]:
        """A tenant's allocations, each with its campaign's name and credit type"""
        campaigns: Dict[str, Optional[SeasonalCreditCampaign]] = {}
        result: List[CampaignAllocation] = []
        for allocation in await self.allocation_store.list_by_tenant(tenant_id):
            if allocation.campaign_id not in campaigns:
                campaigns[allocation.campaign_id] = await self.repository.get_campaign_by_id(
                    allocation.campaign_id
                )
            campaign = campaigns[allocation.campaign_id]
            result.append(
                CampaignAllocation(
                    **allocation.model_dump(),
                    campaign_name=campaign.campaign_name if campaign else None,
                    credit_type=campaign.credit_type.value if campaign else None,
                    campaign_description=campaign.description if campaign else None,
                )
            )
        return result

    @staticmethod
    def credit_types() -> List[Dict[str, Any]]:
        return [dict(item) for item in CREDIT_TYPE_CATALOGUE]

    # ====================
    # Status transitions
    # ====================

    async def begin_distribution(self, campaign_id: str) -> SeasonalCreditCampaign:
        """
        Atomically move a campaign from pending to processing.

        The repository performs a single conditional update, so of two
        concurrent callers exactly one succeeds.

        Raises:
            CampaignNotFoundError: If campaign not found
            CampaignStateConflictError: If campaign is not pending
        """
        campaign = await self.repository.transition_status(
            campaign_id,
            CampaignStatusEnum.PENDING.value,
            CampaignStatusEnum.PROCESSING.value,
        )
        if campaign:
            logger.info(f"Campaign {campaign_id} moved to processing")
            return campaign

        # Lost the swap: report why (read only, no write follows)
        current = await self.repository.get_campaign_by_id(campaign_id)
        if not current:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)

        status = getattr(current.distribution_status, "value", current.distribution_status)
        raise CampaignStateConflictError(
            f"Campaign already processed. Current status: {status}",
            campaign_id=campaign_id,
            current_status=status,
        )

    async def finalize(
        self, campaign_id: str, distributed_count: int, failed_count: int
    ) -> CampaignStatusEnum:
        """Write the terminal status and aggregate counts of a distribution run"""
        status = resolve_final_status(distributed_count, failed_count)
        campaign = await self.repository.finalize_distribution(
            campaign_id, status.value, distributed_count, failed_count
        )
        if not campaign:
            raise CampaignStateConflictError(
                f"Campaign {campaign_id} is not processing; cannot finalize",
                campaign_id=campaign_id,
            )
        logger.info(
            f"Campaign {campaign_id} finalized as {status.value}: "
            f"{distributed_count} distributed, {failed_count} failed"
        )
        return status

    async def abort_distribution(
        self, campaign_id: str, distributed_count: int = 0, failed_count: int = 0
    ) -> bool:
        """
        Mark a processing campaign as failed after its run broke off.

        Returns:
            True if the campaign was moved to failed, False if it had already
            left processing
        """
        campaign = await self.repository.finalize_distribution(
            campaign_id, CampaignStatusEnum.FAILED.value, distributed_count, failed_count
        )
        if not campaign:
            logger.warning(f"Campaign {campaign_id} was not processing; abort left it unchanged")
            return False
        logger.warning(
            f"Campaign {campaign_id} aborted as failed: "
            f"{distributed_count} distributed, {failed_count} failed"
        )
        return True

    async def extend_expiry(self, campaign_id: str, additional_days: int) -> ExpiryExtensionResult:
        """
        Push the campaign expiry out and cascade the same date to its allocations.

        Raises:
            CampaignValidationError: If additional_days is not positive
            CampaignNotFoundError: If campaign not found
        """
        if additional_days is None or int(additional_days) <= 0:
            raise CampaignValidationError(["additional_days must be greater than 0"])

        campaign = await self.get_campaign(campaign_id)
        old_expiry = campaign.expires_at
        new_expiry = old_expiry + timedelta(days=int(additional_days))

        updated = await self.repository.update_campaign_expiry(campaign_id, new_expiry)
        if not updated:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)

        await self.allocation_store.extend_expiry(campaign_id, new_expiry)

        logger.info(f"Extended campaign {campaign_id} expiry by {additional_days} days")
        return ExpiryExtensionResult(
            campaign_id=campaign_id,
            old_expiry_date=old_expiry,
            new_expiry_date=new_expiry,
            additional_days=int(additional_days),
        )


__all__ = ["CampaignLifecycleManager", "resolve_final_status"]
