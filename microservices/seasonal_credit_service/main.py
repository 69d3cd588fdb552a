"""
Seasonal Credit Microservice API

Seasonal credit campaigns: distribution of promotional credit to tenants,
expiry warnings and reclaiming of expired credit.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
import uvicorn

from core.config_manager import ConfigManager
from core.internal_service_auth import require_auth_or_internal_service
from core.logger import setup_service_logger

from .factory import create_seasonal_credit_service
from .models import (
    CampaignAllocation,
    CampaignStatusResponse,
    CreateCampaignRequest,
    DistributionResult,
    ExpiringAllocation,
    ExpiryExtensionResult,
    ExpirySweepResult,
    ExpiryWarningResult,
    ExtendExpiryRequest,
    HealthCheckResponse as HealthResponse,
    SeasonalCreditCampaign,
    SendWarningsRequest,
)
from .protocols import (
    CampaignNotFoundError,
    CampaignStateConflictError,
    CampaignValidationError,
)
from .seasonal_credit_service import SeasonalCreditService

# Initialize configuration manager
config_manager = ConfigManager("seasonal_credit_service")
config = config_manager.get_service_config()

# Configure logging
logger = setup_service_logger("seasonal_credit_service", level=config.log_level.upper())

# Print configuration info (development environment)
if config.debug:
    config_manager.print_config_summary(show_secrets=False)

# Global variables
seasonal_credit_service: Optional[SeasonalCreditService] = None
scheduler = None  # APScheduler for expiry jobs
SERVICE_PORT = config.service_port or 8240
SERVICE_VERSION = "1.0.0"
API_PREFIX = "/api/v1/seasonal-credits"


def _start_expiry_scheduler(service: SeasonalCreditService):
    """Schedule the daily expiry sweep and warning run"""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    expiry_scheduler = AsyncIOScheduler()

    expiry_scheduler.add_job(
        service.process_expiries,
        'cron',
        hour=config.expiry_sweep_cron_hour,
        minute=0,
        id='seasonal_credit_expiry_job',
        replace_existing=True,
    )
    expiry_scheduler.add_job(
        service.send_expiry_warnings,
        'cron',
        hour=config.expiry_sweep_cron_hour,
        minute=30,
        kwargs={"days_ahead": config.expiry_warning_days},
        id='seasonal_credit_expiry_warning_job',
        replace_existing=True,
    )

    expiry_scheduler.start()
    logger.info(
        f"✅ Expiry scheduler started (daily at {config.expiry_sweep_cron_hour:02d}:00, "
        f"warnings {config.expiry_warning_days} days ahead)"
    )
    return expiry_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global seasonal_credit_service, scheduler

    try:
        seasonal_credit_service = create_seasonal_credit_service(config=config_manager)
        await seasonal_credit_service.campaign_repository.initialize()

        if config.expiry_sweep_enabled:
            try:
                scheduler = _start_expiry_scheduler(seasonal_credit_service)
            except Exception as e:
                logger.warning(f"⚠️  Failed to start expiry scheduler: {e}")
                scheduler = None

        logger.info(f"✅ Seasonal credit service started on port {SERVICE_PORT}")
        yield

    except Exception as e:
        logger.error(f"Failed to initialize seasonal credit service: {e}")
        raise
    finally:
        if scheduler:
            try:
                scheduler.shutdown()
                logger.info("✅ Expiry scheduler stopped")
            except Exception as e:
                logger.error(f"❌ Failed to stop scheduler: {e}")

        if seasonal_credit_service:
            await seasonal_credit_service.close()
            logger.info("Seasonal credit service peer clients closed")
            await seasonal_credit_service.campaign_repository.close()
            logger.info("Seasonal credit service database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Seasonal Credit Service",
    description="Seasonal credit campaigns, distribution and expiry",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Dependency Injection
# ====================


async def get_seasonal_credit_service() -> SeasonalCreditService:
    """Get seasonal credit service instance"""
    if not seasonal_credit_service:
        raise HTTPException(status_code=503, detail="Seasonal credit service not initialized")
    return seasonal_credit_service


def _to_http_error(e: Exception, action: str) -> HTTPException:
    """Map service exceptions onto HTTP status codes"""
    if isinstance(e, CampaignValidationError):
        return HTTPException(status_code=400, detail=e.errors)
    if isinstance(e, CampaignNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CampaignStateConflictError):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Error {action}: {e}")
    return HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


# ====================
# Health Check
# ====================


@app.get(f"{API_PREFIX}/health")
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check"""
    dependencies = {}

    try:
        if seasonal_credit_service:
            healthy = await seasonal_credit_service.campaign_repository.health_check()
            dependencies["database"] = "healthy" if healthy else "unhealthy"
        else:
            dependencies["database"] = "unhealthy"
    except Exception:
        dependencies["database"] = "unhealthy"

    dependencies["scheduler"] = "healthy" if scheduler and scheduler.running else "not_configured"

    status = "healthy" if all(v in ["healthy", "not_configured"] for v in dependencies.values()) else "degraded"

    return HealthResponse(
        status=status,
        service="seasonal_credit_service",
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        timestamp=datetime.utcnow().isoformat(),
    )


# ====================
# Campaigns
# ====================


@app.get(f"{API_PREFIX}/types")
async def get_credit_types(
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Available credit types with default expiry days"""
    return {"credit_types": service.get_credit_types()}


@app.get(f"{API_PREFIX}/campaigns", response_model=List[SeasonalCreditCampaign])
async def list_campaigns(
    is_active: Optional[bool] = None,
    distribution_status: Optional[str] = None,
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """List campaigns, newest first"""
    try:
        return await service.list_campaigns(is_active=is_active, distribution_status=distribution_status)
    except Exception as e:
        raise _to_http_error(e, "listing campaigns")


@app.post(f"{API_PREFIX}/campaigns", response_model=SeasonalCreditCampaign)
async def create_campaign(
    request: CreateCampaignRequest,
    user_id: str = Depends(require_auth_or_internal_service),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Create a campaign in pending state"""
    try:
        return await service.create_campaign(request.model_dump(), created_by=user_id)
    except Exception as e:
        raise _to_http_error(e, "creating campaign")


@app.get(f"{API_PREFIX}/campaigns/{{campaign_id}}", response_model=SeasonalCreditCampaign)
async def get_campaign(
    campaign_id: str,
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Get campaign by ID"""
    try:
        return await service.get_campaign(campaign_id)
    except Exception as e:
        raise _to_http_error(e, "getting campaign")


@app.post(f"{API_PREFIX}/campaigns/{{campaign_id}}/distribute", response_model=DistributionResult)
async def distribute_campaign(
    campaign_id: str,
    user_id: str = Depends(require_auth_or_internal_service),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Distribute a pending campaign to its target tenants"""
    try:
        logger.info(f"Distribution of campaign {campaign_id} requested by {user_id}")
        return await service.distribute_campaign(campaign_id)
    except Exception as e:
        raise _to_http_error(e, "distributing campaign")


@app.get(f"{API_PREFIX}/campaigns/{{campaign_id}}/status", response_model=CampaignStatusResponse)
async def get_distribution_status(
    campaign_id: str,
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Campaign with its allocations and a distribution summary"""
    try:
        return await service.get_distribution_status(campaign_id)
    except Exception as e:
        raise _to_http_error(e, "getting distribution status")


@app.put(f"{API_PREFIX}/campaigns/{{campaign_id}}/extend", response_model=ExpiryExtensionResult)
async def extend_campaign_expiry(
    campaign_id: str,
    request: ExtendExpiryRequest,
    user_id: str = Depends(require_auth_or_internal_service),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Extend a campaign's expiry and cascade it to its allocations"""
    try:
        return await service.extend_campaign_expiry(campaign_id, request.additional_days)
    except Exception as e:
        raise _to_http_error(e, "extending campaign expiry")


# ====================
# Allocations and Expiry
# ====================


@app.get(f"{API_PREFIX}/tenant-allocations", response_model=List[CampaignAllocation])
async def get_tenant_allocations(
    tenant_id: str = Query(..., min_length=1),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Allocations of one tenant"""
    try:
        return await service.get_tenant_allocations(tenant_id)
    except Exception as e:
        raise _to_http_error(e, "getting tenant allocations")


@app.get(f"{API_PREFIX}/expiring-soon", response_model=List[ExpiringAllocation])
async def get_expiring_allocations(
    days_ahead: int = Query(30, ge=1, le=365),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Active allocations expiring within days_ahead"""
    try:
        return await service.get_expiring_allocations(days_ahead)
    except Exception as e:
        raise _to_http_error(e, "getting expiring allocations")


@app.post(f"{API_PREFIX}/send-warnings", response_model=ExpiryWarningResult)
async def send_expiry_warnings(
    request: SendWarningsRequest,
    user_id: str = Depends(require_auth_or_internal_service),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Notify tenants about allocations expiring within days_ahead"""
    try:
        return await service.send_expiry_warnings(request.days_ahead)
    except Exception as e:
        raise _to_http_error(e, "sending expiry warnings")


@app.post(f"{API_PREFIX}/process-expiries", response_model=ExpirySweepResult)
async def process_expiries(
    user_id: str = Depends(require_auth_or_internal_service),
    service: SeasonalCreditService = Depends(get_seasonal_credit_service)
):
    """Expire allocations past their expiry and reclaim unused credit"""
    try:
        return await service.process_expiries()
    except Exception as e:
        raise _to_http_error(e, "processing expiries")


if __name__ == "__main__":
    uvicorn.run(
        "microservices.seasonal_credit_service.main:app",
        host="0.0.0.0",
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )
