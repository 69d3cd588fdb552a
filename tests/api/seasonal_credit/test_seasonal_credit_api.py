"""
API Tests for Seasonal Credit Endpoints

Routing, caller authentication, error-to-status mapping and response
shapes of the seasonal credit HTTP surface.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from microservices.seasonal_credit_service.models import (
    CampaignAllocation,
    CampaignStatusEnum,
    DistributionResult,
    ExpiryExtensionResult,
    ExpirySweepResult,
    ExpiryWarningResult,
    FailedTenant,
)
from microservices.seasonal_credit_service.protocols import (
    CampaignNotFoundError,
    CampaignStateConflictError,
    CampaignValidationError,
)

API_PREFIX = "/api/v1/seasonal-credits"


@pytest.mark.api
class TestHealth:

    def test_health_reports_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "seasonal_credit_service"

    def test_prefixed_health(self, client):
        assert client.get(f"{API_PREFIX}/health").status_code == 200

    def test_uninitialized_service_returns_503(self, uninitialized_client):
        response = uninitialized_client.get(f"{API_PREFIX}/campaigns")
        assert response.status_code == 503


@pytest.mark.api
class TestCampaignEndpoints:

    def test_credit_types(self, client, mock_service):
        mock_service.get_credit_types.return_value = [{"value": "holiday", "default_expiry_days": 30}]

        response = client.get(f"{API_PREFIX}/types")

        assert response.status_code == 200
        assert response.json()["credit_types"][0]["value"] == "holiday"

    def test_create_campaign_passes_caller(self, client, mock_service, auth_headers, factory, sample_campaign):
        mock_service.create_campaign.return_value = sample_campaign

        response = client.post(
            f"{API_PREFIX}/campaigns", json=factory.make_api_campaign_payload(), headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["campaign_id"] == sample_campaign.campaign_id
        assert response.json()["allocation"]["mode"] == "primary_org"
        _, kwargs = mock_service.create_campaign.call_args
        assert kwargs["created_by"] == auth_headers["user-id"]

    def test_create_campaign_requires_auth(self, client, factory):
        response = client.post(f"{API_PREFIX}/campaigns", json=factory.make_api_campaign_payload())
        assert response.status_code == 401

    def test_validation_errors_are_400_with_all_messages(self, client, mock_service, auth_headers, factory):
        errors = ["Campaign name must be between 1-255 characters", "Total credits must be greater than 0"]
        mock_service.create_campaign.side_effect = CampaignValidationError(errors)

        response = client.post(
            f"{API_PREFIX}/campaigns", json=factory.make_api_campaign_payload(), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == errors

    def test_get_campaign_not_found(self, client, mock_service):
        mock_service.get_campaign.side_effect = CampaignNotFoundError("Campaign not found: x", campaign_id="x")

        response = client.get(f"{API_PREFIX}/campaigns/x")

        assert response.status_code == 404

    def test_list_campaigns_forwards_filters(self, client, mock_service, sample_campaign):
        mock_service.list_campaigns.return_value = [sample_campaign]

        response = client.get(f"{API_PREFIX}/campaigns", params={"distribution_status": "pending"})

        assert response.status_code == 200
        assert len(response.json()) == 1
        mock_service.list_campaigns.assert_awaited_once_with(is_active=None, distribution_status="pending")

    def test_unexpected_error_is_500(self, client, mock_service):
        mock_service.list_campaigns.side_effect = RuntimeError("pool exhausted")

        response = client.get(f"{API_PREFIX}/campaigns")

        assert response.status_code == 500


@pytest.mark.api
class TestDistributionEndpoints:

    def test_distribute_returns_result(self, client, mock_service, auth_headers):
        mock_service.distribute_campaign.return_value = DistributionResult(
            campaign_id="sc_camp_1",
            distributed_count=4,
            failed_count=1,
            status=CampaignStatusEnum.PARTIAL_SUCCESS,
            failed_tenants=[FailedTenant(tenant_id="tenant_3", error="No primary organization found")],
        )

        response = client.post(f"{API_PREFIX}/campaigns/sc_camp_1/distribute", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "partial_success"
        assert data["failed_tenants"][0]["tenant_id"] == "tenant_3"

    def test_distribute_already_processed_is_409(self, client, mock_service, auth_headers):
        mock_service.distribute_campaign.side_effect = CampaignStateConflictError(
            "Campaign already processed. Current status: completed",
            campaign_id="sc_camp_1",
            current_status="completed",
        )

        response = client.post(f"{API_PREFIX}/campaigns/sc_camp_1/distribute", headers=auth_headers)

        assert response.status_code == 409
        assert "already processed" in response.json()["detail"]

    def test_distribute_requires_auth(self, client):
        response = client.post(f"{API_PREFIX}/campaigns/sc_camp_1/distribute")
        assert response.status_code == 401

    def test_extend_expiry(self, client, mock_service, auth_headers):
        old = datetime.now(timezone.utc) + timedelta(days=5)
        mock_service.extend_campaign_expiry.return_value = ExpiryExtensionResult(
            campaign_id="sc_camp_1", old_expiry_date=old, new_expiry_date=old + timedelta(days=10), additional_days=10
        )

        response = client.put(
            f"{API_PREFIX}/campaigns/sc_camp_1/extend", json={"additional_days": 10}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["additional_days"] == 10
        mock_service.extend_campaign_expiry.assert_awaited_once_with("sc_camp_1", 10)

    def test_extend_rejects_non_positive_days(self, client, auth_headers):
        response = client.put(
            f"{API_PREFIX}/campaigns/sc_camp_1/extend", json={"additional_days": 0}, headers=auth_headers
        )
        assert response.status_code == 422


@pytest.mark.api
class TestExpiryEndpoints:

    def test_tenant_allocations_requires_tenant(self, client):
        assert client.get(f"{API_PREFIX}/tenant-allocations").status_code == 422

    def test_tenant_allocations_include_campaign(self, client, mock_service, factory):
        tenant_id = factory.make_tenant_id()
        mock_service.get_tenant_allocations.return_value = [
            CampaignAllocation(
                allocation_id=factory.make_allocation_id(),
                campaign_id=factory.make_campaign_id(),
                tenant_id=tenant_id,
                entity_id=factory.make_entity_id(),
                allocated_credits=Decimal("25"),
                expires_at=factory.make_future_expiry(),
                distribution_status="completed",
                campaign_name="Winter Boost",
                credit_type="holiday",
            )
        ]

        response = client.get(f"{API_PREFIX}/tenant-allocations", params={"tenant_id": tenant_id})

        assert response.status_code == 200
        body = response.json()
        assert body[0]["campaign_name"] == "Winter Boost"
        assert body[0]["credit_type"] == "holiday"
        mock_service.get_tenant_allocations.assert_awaited_once_with(tenant_id)

    def test_expiring_soon_default_window(self, client, mock_service):
        mock_service.get_expiring_allocations.return_value = []

        response = client.get(f"{API_PREFIX}/expiring-soon")

        assert response.status_code == 200
        mock_service.get_expiring_allocations.assert_awaited_once_with(30)

    def test_send_warnings(self, client, mock_service, auth_headers):
        mock_service.send_expiry_warnings.return_value = ExpiryWarningResult(emails_sent=2, total_expiring=3)

        response = client.post(f"{API_PREFIX}/send-warnings", json={"days_ahead": 5}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"emails_sent": 2, "total_expiring": 3}
        mock_service.send_expiry_warnings.assert_awaited_once_with(5)

    def test_process_expiries(self, client, mock_service, auth_headers):
        mock_service.process_expiries.return_value = ExpirySweepResult(processed_count=1, total_expired=2)

        response = client.post(f"{API_PREFIX}/process-expiries", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["processed_count"] == 1

    def test_process_expiries_internal_service(self, client, mock_service):
        from core.internal_service_auth import InternalServiceAuth

        mock_service.process_expiries.return_value = ExpirySweepResult(processed_count=0, total_expired=0)

        response = client.post(
            f"{API_PREFIX}/process-expiries", headers=InternalServiceAuth.get_internal_service_headers()
        )

        assert response.status_code == 200
