"""
API Test Fixtures for Seasonal Credit Service

Runs the FastAPI app in-process with the service layer replaced by a mock,
so routing, auth, status-code mapping and response models are exercised
without a database.
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from microservices.seasonal_credit_service import main
from microservices.seasonal_credit_service.models import campaign_from_record
from tests.contracts.seasonal_credit.data_contract import SeasonalCreditTestDataFactory


API_PREFIX = "/api/v1/seasonal-credits"


@pytest.fixture
def mock_service():
    """Service double; async methods are AsyncMocks, get_credit_types is sync"""
    service = MagicMock()
    for name in (
        "create_campaign",
        "get_campaign",
        "list_campaigns",
        "get_distribution_status",
        "extend_campaign_expiry",
        "distribute_campaign",
        "get_tenant_allocations",
        "get_expiring_allocations",
        "send_expiry_warnings",
        "process_expiries",
    ):
        setattr(service, name, AsyncMock())
    service.campaign_repository.health_check = AsyncMock(return_value=True)
    return service


@pytest.fixture
def client(mock_service):
    """TestClient with the module-level service swapped for the mock"""
    with patch.object(main, "seasonal_credit_service", mock_service):
        yield TestClient(main.app)


@pytest.fixture
def uninitialized_client():
    with patch.object(main, "seasonal_credit_service", None):
        yield TestClient(main.app)


@pytest.fixture
def auth_headers():
    return {"user-id": SeasonalCreditTestDataFactory.make_user_id()}


@pytest.fixture
def factory():
    return SeasonalCreditTestDataFactory


@pytest.fixture
def sample_campaign():
    """A persisted-looking pending campaign"""
    now = datetime.now(timezone.utc)
    record = SeasonalCreditTestDataFactory.make_campaign_data(total_credits=Decimal("500"))
    record.update(
        campaign_id=SeasonalCreditTestDataFactory.make_campaign_id(),
        created_at=now,
        updated_at=now,
    )
    return campaign_from_record(record)
