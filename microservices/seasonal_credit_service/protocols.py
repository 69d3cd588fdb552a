"""
Seasonal Credit Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .models import (
    CreditBalance,
    CreditTransaction,
    SeasonalCreditAllocation,
    SeasonalCreditCampaign,
)

# Receives the locked previous balance, returns (new_balance, transaction_data)
BalanceMutator = Callable[[Decimal], Tuple[Decimal, Dict[str, Any]]]


# ====================
# Repository Protocols
# ====================


@runtime_checkable
class CampaignRepositoryProtocol(Protocol):
    """Persistence of campaign definitions and their distribution status"""

    async def create_campaign(self, campaign_data: Dict[str, Any]) -> SeasonalCreditCampaign:
        ...

    async def get_campaign_by_id(self, campaign_id: str) -> Optional[SeasonalCreditCampaign]:
        ...

    async def list_campaigns(
        self,
        is_active: Optional[bool] = None,
        distribution_status: Optional[str] = None,
    ) -> List[SeasonalCreditCampaign]:
        """Campaigns ordered newest first"""
        ...

    async def transition_status(
        self, campaign_id: str, from_status: str, to_status: str
    ) -> Optional[SeasonalCreditCampaign]:
        """
        Conditionally move a campaign between statuses.

        Must be a single atomic compare-and-swap on distribution_status.

        Returns:
            Updated campaign, or None if the campaign is missing or not in from_status
        """
        ...

    async def finalize_distribution(
        self,
        campaign_id: str,
        status: str,
        distributed_count: int,
        failed_count: int,
    ) -> Optional[SeasonalCreditCampaign]:
        ...

    async def update_campaign_expiry(
        self, campaign_id: str, expires_at: datetime
    ) -> Optional[SeasonalCreditCampaign]:
        ...


@runtime_checkable
class AllocationRepositoryProtocol(Protocol):
    """Persistence of allocation records"""

    async def create_allocation(self, alloc_data: Dict[str, Any]) -> SeasonalCreditAllocation:
        ...

    async def get_allocation_by_id(self, allocation_id: str) -> Optional[SeasonalCreditAllocation]:
        ...

    async def mark_allocation_expired(self, allocation_id: str) -> bool:
        """Set is_active=False, is_expired=True"""
        ...

    async def update_campaign_allocations_expiry(self, campaign_id: str, expires_at: datetime) -> int:
        """Returns number of allocations updated"""
        ...

    async def get_allocations_expiring_between(
        self, start: datetime, end: datetime
    ) -> List[SeasonalCreditAllocation]:
        """Active, not expired, start <= expires_at <= end, ascending by expires_at"""
        ...

    async def get_expired_allocations(self, now: datetime) -> List[SeasonalCreditAllocation]:
        """Active, not expired, expires_at <= now"""
        ...

    async def get_allocations_by_tenant(self, tenant_id: str) -> List[SeasonalCreditAllocation]:
        ...

    async def get_allocations_by_campaign(self, campaign_id: str) -> List[SeasonalCreditAllocation]:
        ...

    async def mark_allocation_warned(self, allocation_id: str, warned_at: datetime) -> bool:
        ...


@runtime_checkable
class LedgerRepositoryProtocol(Protocol):
    """Persistence of credit balances and the append-only transaction log"""

    async def mutate_balance(
        self, tenant_id: str, entity_id: str, mutator: BalanceMutator
    ) -> Tuple[Decimal, Decimal, CreditTransaction]:
        """
        Apply one balance change as a single unit of work.

        Locks (or lazily creates at 0) the balance for (tenant_id, entity_id),
        calls mutator(previous_balance), writes the new balance and appends the
        transaction row. Both writes commit together or not at all.

        Returns:
            (previous_balance, new_balance, transaction)
        """
        ...

    async def get_balance(self, tenant_id: str, entity_id: str) -> Optional[CreditBalance]:
        ...

    async def get_transactions(
        self, tenant_id: str, entity_id: Optional[str] = None
    ) -> List[CreditTransaction]:
        ...


# ====================
# External Collaborator Protocols
# ====================


@runtime_checkable
class TenantDirectoryProtocol(Protocol):
    """Interface for tenant / organization lookup"""

    async def list_active_tenant_ids(self) -> List[str]:
        ...

    async def get_primary_organization_entity(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        """
        Get the tenant's primary organization entity.

        Returns:
            Entity dict with at least entity_id (and entity_type), or None
        """
        ...


@runtime_checkable
class NotificationSinkProtocol(Protocol):
    """Fire-and-forget notification delivery"""

    async def emit(
        self,
        tenant_id: str,
        title: str,
        message: str,
        action_url: str,
        metadata: Dict[str, Any],
    ) -> None:
        ...


# ====================
# Custom Exceptions (no I/O operations)
# ====================


class SeasonalCreditError(Exception):
    """Base exception for seasonal credit errors"""
    pass


class CampaignValidationError(SeasonalCreditError):
    """Raised when campaign input is malformed; carries every field-level message"""

    def __init__(self, errors: List[str]):
        super().__init__(", ".join(errors))
        self.errors = list(errors)


class CampaignStateConflictError(SeasonalCreditError):
    """Raised when a lifecycle operation does not fit the campaign's state"""

    def __init__(
        self,
        message: str,
        campaign_id: Optional[str] = None,
        current_status: Optional[str] = None,
    ):
        super().__init__(message)
        self.campaign_id = campaign_id
        self.current_status = current_status


class CampaignNotFoundError(CampaignStateConflictError):
    """Raised when a lifecycle operation references an unknown campaign"""

    def __init__(self, message: str, campaign_id: Optional[str] = None):
        super().__init__(message, campaign_id=campaign_id)


class TenantEntityNotFoundError(SeasonalCreditError):
    """Raised when a tenant has no primary organization entity"""

    def __init__(self, message: str, tenant_id: Optional[str] = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class LedgerError(SeasonalCreditError):
    """Raised when a balance mutation could not be persisted"""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NotificationError(SeasonalCreditError):
    """Raised when a notification could not be emitted (never fatal)"""
    pass


__all__ = [
    "BalanceMutator",
    "CampaignRepositoryProtocol",
    "AllocationRepositoryProtocol",
    "LedgerRepositoryProtocol",
    "TenantDirectoryProtocol",
    "NotificationSinkProtocol",
    "SeasonalCreditError",
    "CampaignValidationError",
    "CampaignStateConflictError",
    "CampaignNotFoundError",
    "TenantEntityNotFoundError",
    "LedgerError",
    "NotificationError",
]
