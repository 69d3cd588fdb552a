"""
Seasonal Credit Service Data Models

Campaigns, allocations, credit balances and ledger transactions for the
distribution of free credits to tenants.
All credit amounts are Decimal.
"""

from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


# ====================
# Enumerations
# ====================

class CreditTypeEnum(str, Enum):
    """Valid campaign credit types"""
    FREE_DISTRIBUTION = "free_distribution"
    PROMOTIONAL = "promotional"
    HOLIDAY = "holiday"
    BONUS = "bonus"
    EVENT = "event"


class DistributionMethodEnum(str, Enum):
    """How total_credits is turned into a per-tenant amount"""
    EQUAL = "equal"
    FIXED = "fixed"


class AllocationModeEnum(str, Enum):
    """Where distributed credit lands"""
    PRIMARY_ORG = "primary_org"
    APPLICATION_SPECIFIC = "application_specific"


class CampaignStatusEnum(str, Enum):
    """Campaign distribution lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL_SUCCESS = "partial_success"


class AllocationStatusEnum(str, Enum):
    """Per-allocation distribution outcome"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionTypeEnum(str, Enum):
    """Ledger transaction types written by this service"""
    SEASONAL_CAMPAIGN = "seasonal_campaign"
    EXPIRY = "expiry"


class ApplicationCodeEnum(str, Enum):
    """Applications that can receive application-specific allocations"""
    CRM = "crm"
    HR = "hr"
    AFFILIATE = "affiliate"
    SYSTEM = "system"
    OPERATIONS = "operations"


TERMINAL_STATUSES = frozenset({
    CampaignStatusEnum.COMPLETED,
    CampaignStatusEnum.FAILED,
    CampaignStatusEnum.PARTIAL_SUCCESS,
})

VALID_APPLICATION_CODES = [e.value for e in ApplicationCodeEnum]

# Credits are stored NUMERIC(18, 4)
CREDIT_QUANTUM = Decimal("0.0001")

# Stored as target_applications for primary_org campaigns (informational)
PRIMARY_ORG_APPLICATIONS = ["crm", "hr", "affiliate", "system"]

CREDIT_TYPE_CATALOGUE = [
    {
        "value": "free_distribution",
        "label": "Free Distribution",
        "description": "Free credits distributed to tenants",
        "default_expiry_days": 30,
    },
    {
        "value": "promotional",
        "label": "Promotional",
        "description": "Marketing campaign credits",
        "default_expiry_days": 14,
    },
    {
        "value": "holiday",
        "label": "Holiday",
        "description": "Holiday and seasonal promotional credits",
        "default_expiry_days": 30,
    },
    {
        "value": "bonus",
        "label": "Bonus",
        "description": "Loyalty and referral bonus credits",
        "default_expiry_days": 90,
    },
    {
        "value": "event",
        "label": "Event",
        "description": "Special event and product launch credits",
        "default_expiry_days": 7,
    },
]


def to_credits(value: Any) -> Decimal:
    """Coerce to Decimal credits, rounded down to CREDIT_QUANTUM"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CREDIT_QUANTUM, rounding=ROUND_DOWN)


# ====================
# Allocation Mode (tagged variant)
# ====================

class PrimaryOrgAllocation(BaseModel):
    """Credit goes to the tenant's whole primary organization"""
    mode: Literal["primary_org"] = "primary_org"


class ApplicationSpecificAllocation(BaseModel):
    """Credit is split evenly across the named applications"""
    mode: Literal["application_specific"] = "application_specific"
    applications: List[str] = Field(..., min_length=1, description="Target application codes")


AllocationMode = Annotated[
    Union[PrimaryOrgAllocation, ApplicationSpecificAllocation],
    Field(discriminator="mode"),
]


def allocation_mode_from_row(mode: Optional[str], applications: Optional[List[str]]) -> Union[PrimaryOrgAllocation, ApplicationSpecificAllocation]:
    """Rebuild the allocation mode from its persisted columns"""
    if mode == AllocationModeEnum.APPLICATION_SPECIFIC.value:
        return ApplicationSpecificAllocation(applications=list(applications or []))
    return PrimaryOrgAllocation()


# ====================
# Core Data Models
# ====================

class SeasonalCreditCampaign(BaseModel):
    """
    Campaign model - how much credit to distribute, to whom and how.
    Status and counts change only during a distribution run.
    """
    campaign_id: str = Field(..., min_length=1, description="Unique campaign identifier")
    campaign_name: str = Field(..., min_length=1, max_length=255, description="Campaign name")
    description: Optional[str] = Field(None, description="Campaign description")
    credit_type: CreditTypeEnum = Field(..., description="Type of credits")

    # Amounts
    total_credits: Decimal = Field(..., gt=0, description="Total credit pool")
    credits_per_tenant: Optional[Decimal] = Field(None, gt=0, description="Fixed credit per tenant, overrides split")
    distribution_method: DistributionMethodEnum = Field(default=DistributionMethodEnum.EQUAL)

    # Targeting
    target_all_tenants: bool = Field(default=False)
    target_tenant_ids: List[str] = Field(default_factory=list)
    allocation: AllocationMode = Field(default_factory=PrimaryOrgAllocation)
    target_applications: List[str] = Field(default_factory=list, description="Stored application list")

    # Expiry and notifications
    expires_at: datetime = Field(..., description="Credit expiration datetime")
    send_notifications: bool = Field(default=True)
    notification_template: Optional[str] = Field(None)

    # Distribution tracking
    distribution_status: CampaignStatusEnum = Field(default=CampaignStatusEnum.PENDING)
    distributed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    distributed_at: Optional[datetime] = None

    is_active: bool = Field(default=True)
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def allocation_mode(self) -> AllocationModeEnum:
        return AllocationModeEnum(self.allocation.mode)


def campaign_from_record(record: Dict[str, Any]) -> SeasonalCreditCampaign:
    """Build a campaign from a flat persisted record (allocation_mode column, not the union)"""
    data = dict(record)
    mode = data.pop("allocation_mode", None)
    data["allocation"] = allocation_mode_from_row(mode, data.get("target_applications"))
    return SeasonalCreditCampaign(**data)


class SeasonalCreditAllocation(BaseModel):
    """
    Allocation model - credit granted to one tenant under a campaign,
    optionally scoped to one application (target_application=None means
    whole organization).
    """
    allocation_id: str = Field(..., min_length=1)
    campaign_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    entity_id: str = Field(..., min_length=1)
    entity_type: Optional[str] = None
    target_application: Optional[str] = None

    allocated_credits: Decimal = Field(default=Decimal("0"), ge=0)
    used_credits: Decimal = Field(default=Decimal("0"), ge=0)

    expires_at: datetime
    distribution_status: AllocationStatusEnum = Field(default=AllocationStatusEnum.PENDING)
    distribution_error: Optional[str] = None

    is_active: bool = True
    is_expired: bool = False
    last_warned_at: Optional[datetime] = None

    allocated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def unused_credits(self) -> Decimal:
        """Unused credit, never negative even if usage overran the allocation"""
        return max(Decimal("0"), self.allocated_credits - self.used_credits)


class CreditBalance(BaseModel):
    """Credit balance of one entity; mutated only through the ledger"""
    credit_id: str
    tenant_id: str
    entity_id: str
    available_credits: Decimal = Field(default=Decimal("0"), ge=0)
    reserved_credits: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


class CreditTransaction(BaseModel):
    """Immutable ledger entry: new_balance == previous_balance + amount"""
    transaction_id: str
    tenant_id: str
    entity_id: str
    transaction_type: TransactionTypeEnum
    amount: Decimal = Field(..., description="Effective signed delta")
    requested_amount: Decimal = Field(..., description="Delta requested by the caller")
    previous_balance: Decimal = Field(..., ge=0)
    new_balance: Decimal = Field(..., ge=0)
    operation_code: str
    created_at: Optional[datetime] = None


class LedgerResult(BaseModel):
    """Outcome of one ledger mutation"""
    transaction_id: str
    previous_balance: Decimal
    new_balance: Decimal
    amount: Decimal


# ====================
# Operation Results
# ====================

class FailedTenant(BaseModel):
    tenant_id: str
    error: str


class DistributionResult(BaseModel):
    """Aggregate result of a distribution run"""
    campaign_id: str
    distributed_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    status: CampaignStatusEnum
    failed_tenants: Optional[List[FailedTenant]] = None


class ExpirySweepResult(BaseModel):
    processed_count: int = Field(..., ge=0)
    total_expired: int = Field(..., ge=0)


class ExpiryWarningResult(BaseModel):
    emails_sent: int = Field(..., ge=0)
    total_expiring: int = Field(..., ge=0)


class ExpiryExtensionResult(BaseModel):
    campaign_id: str
    old_expiry_date: datetime
    new_expiry_date: datetime
    additional_days: int


class DistributionSummary(BaseModel):
    total_targeted: Union[int, str]
    successfully_distributed: int
    failed_distributions: int
    pending_distributions: int
    total_credits_distributed: Decimal
    total_credits_used: Decimal
    utilization_rate: str


class CampaignStatusResponse(BaseModel):
    campaign: SeasonalCreditCampaign
    allocations: List[SeasonalCreditAllocation]
    summary: DistributionSummary


class CampaignAllocation(SeasonalCreditAllocation):
    """Allocation joined with its campaign (None fields when the campaign is gone)"""
    campaign_name: Optional[str] = None
    credit_type: Optional[str] = None
    campaign_description: Optional[str] = None


class ExpiringAllocation(CampaignAllocation):
    """Allocation enriched with campaign data for expiry listings"""
    days_until_expiry: int = 0


# ====================
# Request Models
# ====================

class CreateCampaignRequest(BaseModel):
    """
    Request to create a campaign.
    Only shapes are checked here; business validation collects all
    field-level errors in the lifecycle manager.
    """
    campaign_name: str = Field(default="")
    description: Optional[str] = None
    credit_type: str = Field(default="")
    total_credits: Optional[Decimal] = None
    credits_per_tenant: Optional[Decimal] = None
    distribution_method: DistributionMethodEnum = DistributionMethodEnum.EQUAL
    target_all_tenants: bool = False
    target_tenant_ids: List[str] = Field(default_factory=list)
    allocation_mode: AllocationModeEnum = AllocationModeEnum.PRIMARY_ORG
    target_applications: List[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    send_notifications: bool = True
    notification_template: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('target_tenant_ids')
    @classmethod
    def strip_tenant_ids(cls, v):
        return [t.strip() for t in v if t and t.strip()]


class ExtendExpiryRequest(BaseModel):
    additional_days: int = Field(..., gt=0, le=3650, description="Days to add to the campaign expiry")


class SendWarningsRequest(BaseModel):
    days_ahead: int = Field(default=7, ge=1, le=365)


# ====================
# Health & System Models
# ====================

class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health status")
    service: str = Field(..., description="Service name")
    port: int = Field(..., description="Service port")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Timestamp ISO format")


class ErrorResponse(BaseModel):
    error: Optional[str] = Field(None, description="Error type")
    detail: Union[str, List[str]] = Field(..., description="Error detail")
