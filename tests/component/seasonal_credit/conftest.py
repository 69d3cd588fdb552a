"""
Seasonal Credit Service Component Test Fixtures

Provides in-memory implementations for seasonal credit component testing:
- MockSeasonalCreditRepository: campaigns, allocations and ledger protocols
- MockTenantDirectory: tenant / primary organization lookup with failure injection
- MockNotificationSink: records emitted notifications
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest

from microservices.seasonal_credit_service.models import (
    CreditBalance,
    CreditTransaction,
    SeasonalCreditAllocation,
    SeasonalCreditCampaign,
    campaign_from_record,
)
from microservices.seasonal_credit_service.protocols import NotificationError
from tests.contracts.seasonal_credit.data_contract import SeasonalCreditTestDataFactory


# =============================================================================
# Mock Repository Implementation
# =============================================================================


class MockSeasonalCreditRepository:
    """
    In-memory implementation of the campaign, allocation and ledger
    repository protocols.

    Status transitions are compare-and-swap with no await between the check
    and the write; balance mutations hold a per-(tenant, entity) lock.
    """

    def __init__(self):
        self.campaigns: Dict[str, Dict[str, Any]] = {}
        self.allocations: Dict[str, Dict[str, Any]] = {}
        self.balances: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.transactions: List[Dict[str, Any]] = []
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

        # Failure injection
        self.fail_ledger_for: set = set()
        self.fail_expire_for: set = set()
        # Allocations another sweep expires just before this one updates them
        self.expired_elsewhere: set = set()

        # Track method calls for verification
        self.method_calls = []

    # ----- campaigns -----

    async def create_campaign(self, campaign_data: Dict[str, Any]) -> SeasonalCreditCampaign:
        self.method_calls.append(("create_campaign", campaign_data["campaign_id"]))
        self.campaigns[campaign_data["campaign_id"]] = dict(campaign_data)
        return campaign_from_record(self.campaigns[campaign_data["campaign_id"]])

    async def get_campaign_by_id(self, campaign_id: str) -> Optional[SeasonalCreditCampaign]:
        self.method_calls.append(("get_campaign_by_id", campaign_id))
        record = self.campaigns.get(campaign_id)
        return campaign_from_record(record) if record else None

    async def list_campaigns(
        self, is_active: Optional[bool] = None, distribution_status: Optional[str] = None
    ) -> List[SeasonalCreditCampaign]:
        self.method_calls.append(("list_campaigns", is_active, distribution_status))
        records = [
            r for r in self.campaigns.values()
            if (is_active is None or r["is_active"] == is_active)
            and (distribution_status is None or r["distribution_status"] == distribution_status)
        ]
        records.sort(key=lambda r: r["created_at"], reverse=True)
        return [campaign_from_record(r) for r in records]

    async def transition_status(
        self, campaign_id: str, from_status: str, to_status: str
    ) -> Optional[SeasonalCreditCampaign]:
        self.method_calls.append(("transition_status", campaign_id, from_status, to_status))
        # Let concurrent callers interleave before the swap
        await asyncio.sleep(0)
        record = self.campaigns.get(campaign_id)
        if not record or record["distribution_status"] != from_status:
            return None
        record["distribution_status"] = to_status
        record["updated_at"] = datetime.now(timezone.utc)
        return campaign_from_record(record)

    async def finalize_distribution(
        self, campaign_id: str, status: str, distributed_count: int, failed_count: int
    ) -> Optional[SeasonalCreditCampaign]:
        self.method_calls.append(("finalize_distribution", campaign_id, status, distributed_count, failed_count))
        record = self.campaigns.get(campaign_id)
        if not record or record["distribution_status"] != "processing":
            return None
        now = datetime.now(timezone.utc)
        record.update(
            distribution_status=status,
            distributed_count=distributed_count,
            failed_count=failed_count,
            distributed_at=now,
            updated_at=now,
        )
        return campaign_from_record(record)

    async def update_campaign_expiry(
        self, campaign_id: str, expires_at: datetime
    ) -> Optional[SeasonalCreditCampaign]:
        self.method_calls.append(("update_campaign_expiry", campaign_id, expires_at))
        record = self.campaigns.get(campaign_id)
        if not record:
            return None
        record["expires_at"] = expires_at
        record["updated_at"] = datetime.now(timezone.utc)
        return campaign_from_record(record)

    # ----- allocations -----

    async def create_allocation(self, alloc_data: Dict[str, Any]) -> SeasonalCreditAllocation:
        self.method_calls.append(("create_allocation", alloc_data["tenant_id"]))
        self.allocations[alloc_data["allocation_id"]] = dict(alloc_data)
        return SeasonalCreditAllocation(**alloc_data)

    async def get_allocation_by_id(self, allocation_id: str) -> Optional[SeasonalCreditAllocation]:
        record = self.allocations.get(allocation_id)
        return SeasonalCreditAllocation(**record) if record else None

    async def mark_allocation_expired(self, allocation_id: str) -> bool:
        self.method_calls.append(("mark_allocation_expired", allocation_id))
        if allocation_id in self.fail_expire_for:
            raise RuntimeError(f"database unavailable for {allocation_id}")
        record = self.allocations.get(allocation_id)
        if record and allocation_id in self.expired_elsewhere:
            record["is_active"] = False
            record["is_expired"] = True
        if not record or not record["is_active"] or record["is_expired"]:
            return False
        record["is_active"] = False
        record["is_expired"] = True
        return True

    async def update_campaign_allocations_expiry(self, campaign_id: str, expires_at: datetime) -> int:
        count = 0
        for record in self.allocations.values():
            if record["campaign_id"] == campaign_id:
                record["expires_at"] = expires_at
                count += 1
        return count

    async def get_allocations_expiring_between(
        self, start: datetime, end: datetime
    ) -> List[SeasonalCreditAllocation]:
        self.method_calls.append(("get_allocations_expiring_between", start, end))
        records = [
            r for r in self.allocations.values()
            if r["is_active"] and not r["is_expired"] and start <= r["expires_at"] <= end
        ]
        records.sort(key=lambda r: r["expires_at"])
        return [SeasonalCreditAllocation(**r) for r in records]

    async def get_expired_allocations(self, now: datetime) -> List[SeasonalCreditAllocation]:
        records = [
            r for r in self.allocations.values()
            if r["is_active"] and not r["is_expired"] and r["expires_at"] <= now
        ]
        return [SeasonalCreditAllocation(**r) for r in records]

    async def get_allocations_by_tenant(self, tenant_id: str) -> List[SeasonalCreditAllocation]:
        return [SeasonalCreditAllocation(**r) for r in self.allocations.values() if r["tenant_id"] == tenant_id]

    async def get_allocations_by_campaign(self, campaign_id: str) -> List[SeasonalCreditAllocation]:
        return [SeasonalCreditAllocation(**r) for r in self.allocations.values() if r["campaign_id"] == campaign_id]

    async def mark_allocation_warned(self, allocation_id: str, warned_at: datetime) -> bool:
        record = self.allocations.get(allocation_id)
        if not record:
            return False
        record["last_warned_at"] = warned_at
        return True

    # ----- ledger -----

    async def mutate_balance(self, tenant_id: str, entity_id: str, mutator) -> Tuple[Decimal, Decimal, CreditTransaction]:
        self.method_calls.append(("mutate_balance", tenant_id, entity_id))
        if tenant_id in self.fail_ledger_for:
            raise RuntimeError("connection reset during balance update")

        key = (tenant_id, entity_id)
        async with self._locks[key]:
            balance = self.balances.setdefault(key, {
                "credit_id": f"sc_cred_{uuid.uuid4().hex[:20]}",
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "available_credits": Decimal("0"),
                "reserved_credits": Decimal("0"),
                "is_active": True,
                "created_at": datetime.now(timezone.utc),
            })
            previous = balance["available_credits"]
            # Yield while holding the lock so unsynchronized writers would race
            await asyncio.sleep(0)
            new_balance, txn = mutator(previous)
            balance["available_credits"] = new_balance
            balance["last_updated_at"] = datetime.now(timezone.utc)
            self.transactions.append(dict(txn))
        return previous, new_balance, CreditTransaction(**txn)

    async def get_balance(self, tenant_id: str, entity_id: str) -> Optional[CreditBalance]:
        record = self.balances.get((tenant_id, entity_id))
        return CreditBalance(**record) if record else None

    async def get_transactions(self, tenant_id: str, entity_id: Optional[str] = None) -> List[CreditTransaction]:
        return [
            CreditTransaction(**t) for t in self.transactions
            if t["tenant_id"] == tenant_id and (entity_id is None or t["entity_id"] == entity_id)
        ]

    # ----- test helpers -----

    def set_balance(self, tenant_id: str, entity_id: str, amount: Decimal):
        self.balances[(tenant_id, entity_id)] = {
            "credit_id": f"sc_cred_{uuid.uuid4().hex[:20]}",
            "tenant_id": tenant_id,
            "entity_id": entity_id,
            "available_credits": Decimal(str(amount)),
            "reserved_credits": Decimal("0"),
            "is_active": True,
            "created_at": datetime.now(timezone.utc),
        }

    def balance_of(self, tenant_id: str, entity_id: str) -> Decimal:
        record = self.balances.get((tenant_id, entity_id))
        return record["available_credits"] if record else Decimal("0")

    def allocations_for(self, campaign_id: str) -> List[Dict[str, Any]]:
        return [r for r in self.allocations.values() if r["campaign_id"] == campaign_id]


# =============================================================================
# Mock Collaborators
# =============================================================================


class MockTenantDirectory:
    """In-memory tenant directory"""

    def __init__(self):
        self.entities: Dict[str, Optional[Dict[str, Any]]] = {}
        self.active_tenants: List[str] = []
        self.raise_for: Dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None
        self.lookups: List[str] = []
        self.closed = False

    def add_tenant(self, tenant_id: Optional[str] = None, entity_id: Optional[str] = None, active: bool = True) -> Tuple[str, str]:
        tenant_id = tenant_id or SeasonalCreditTestDataFactory.make_tenant_id()
        entity = SeasonalCreditTestDataFactory.make_entity(entity_id)
        self.entities[tenant_id] = entity
        if active:
            self.active_tenants.append(tenant_id)
        return tenant_id, entity["entity_id"]

    def add_tenant_without_organization(self, tenant_id: Optional[str] = None) -> str:
        tenant_id = tenant_id or SeasonalCreditTestDataFactory.make_tenant_id()
        self.entities[tenant_id] = None
        self.active_tenants.append(tenant_id)
        return tenant_id

    async def list_active_tenant_ids(self) -> List[str]:
        if self.list_error:
            raise self.list_error
        return list(self.active_tenants)

    async def get_primary_organization_entity(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        self.lookups.append(tenant_id)
        await asyncio.sleep(0)
        if tenant_id in self.raise_for:
            raise self.raise_for[tenant_id]
        return self.entities.get(tenant_id)

    async def close(self) -> None:
        self.closed = True


class MockNotificationSink:
    """Records notifications; can be told to fail"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def emit(self, tenant_id: str, title: str, message: str, action_url: str, metadata: Dict[str, Any]) -> None:
        if self.fail:
            raise NotificationError("notification_service unavailable")
        self.sent.append({
            "tenant_id": tenant_id,
            "title": title,
            "message": message,
            "action_url": action_url,
            "metadata": metadata,
        })


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_repository():
    """Create in-memory seasonal credit repository"""
    return MockSeasonalCreditRepository()


@pytest.fixture
def mock_tenant_directory():
    """Create in-memory tenant directory"""
    return MockTenantDirectory()


@pytest.fixture
def mock_notification_sink():
    """Create recording notification sink"""
    return MockNotificationSink()


@pytest.fixture
def seasonal_credit_service(mock_repository, mock_tenant_directory, mock_notification_sink):
    """Create seasonal credit service with in-memory dependencies"""
    from microservices.seasonal_credit_service.seasonal_credit_service import SeasonalCreditService

    return SeasonalCreditService(
        campaign_repository=mock_repository,
        allocation_repository=mock_repository,
        ledger_repository=mock_repository,
        tenant_directory=mock_tenant_directory,
        notification_sink=mock_notification_sink,
        distribution_concurrency=4,
    )


@pytest.fixture
def data_factory():
    """Provide data factory for test data generation"""
    return SeasonalCreditTestDataFactory
