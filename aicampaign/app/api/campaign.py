"""HTTP endpoints for the AI campaign.

Public:
- GET  /api/v1/ai-campaign/status

Admin (require the X-Admin-Id header):
- GET   /api/v1/admin/ai-campaign/metrics
- POST  /api/v1/admin/ai-campaign/pause
- POST  /api/v1/admin/ai-campaign/resume
- POST  /api/v1/admin/ai-campaign/end
- POST  /api/v1/admin/ai-campaign/reconcile
- GET   /api/v1/admin/ai-campaign/{campaign_id}
- PATCH /api/v1/admin/ai-campaign/{campaign_id}
"""

from datetime import datetime
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aicampaign.app.core.logging import get_log_context, get_logger
from aicampaign.app.db.models import CampaignStatus
from aicampaign.app.exceptions import InvalidInputError, NotFoundError
from aicampaign.app.services.campaign_admin import (
    CampaignAdminService,
    get_campaign_admin_service,
)
from aicampaign.app.services.campaign_quota import (
    CampaignQuotaService,
    get_campaign_quota_service,
)

router = APIRouter(prefix="/api/v1", tags=["ai-campaign"])
logger = get_logger(__name__)


class CampaignUpdateRequest(BaseModel):
    """Partial campaign update. Only fields present in the body are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    total_token_budget: Optional[int] = Field(None, ge=0)
    used_tokens: Optional[int] = Field(None, ge=0)
    avg_tokens_per_scan: Optional[int] = Field(None, gt=0)
    status: Optional[CampaignStatus] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class CampaignActionRequest(BaseModel):
    """Body for lifecycle actions."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    campaign_id: Optional[str] = None


def require_admin_id(
    x_admin_id: Annotated[Optional[str], Header(alias="X-Admin-Id")] = None,
) -> str:
    if not x_admin_id or not x_admin_id.strip():
        raise InvalidInputError("X-Admin-Id header is required")
    return x_admin_id


def get_quota_service() -> CampaignQuotaService:
    return get_campaign_quota_service()


def get_admin_service() -> CampaignAdminService:
    return get_campaign_admin_service()


AdminId = Annotated[str, Depends(require_admin_id)]
QuotaServiceDep = Annotated[CampaignQuotaService, Depends(get_quota_service)]
AdminServiceDep = Annotated[CampaignAdminService, Depends(get_admin_service)]


def _ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


@router.get("/ai-campaign/status")
async def get_status(service: QuotaServiceDep) -> dict[str, Any]:
    """Public campaign availability."""
    status = await service.get_campaign_status()
    if status is None:
        raise NotFoundError("No active campaign")
    return _ok(status.to_dict())


@router.get("/admin/ai-campaign/metrics")
async def get_metrics(admin_id: AdminId, service: QuotaServiceDep) -> dict[str, Any]:
    metrics = await service.get_campaign_metrics()
    if metrics is None:
        raise NotFoundError("No active campaign")
    return _ok(metrics.to_dict())


@router.post("/admin/ai-campaign/pause")
async def pause_campaign(
    admin_id: AdminId,
    service: AdminServiceDep,
    body: Optional[CampaignActionRequest] = None,
) -> dict[str, Any]:
    campaign_id = body.campaign_id if body else None
    campaign = await service.pause_campaign(admin_id, campaign_id)
    logger.info("Campaign paused", extra=get_log_context(campaign_id=campaign.id, admin_id=admin_id))
    return _ok(campaign.to_dict())


@router.post("/admin/ai-campaign/resume")
async def resume_campaign(
    body: CampaignActionRequest,
    admin_id: AdminId,
    service: AdminServiceDep,
) -> dict[str, Any]:
    campaign = await service.resume_campaign(admin_id, body.campaign_id)
    logger.info("Campaign resumed", extra=get_log_context(campaign_id=campaign.id, admin_id=admin_id))
    return _ok(campaign.to_dict())


@router.post("/admin/ai-campaign/end")
async def end_campaign(
    body: CampaignActionRequest,
    admin_id: AdminId,
    service: AdminServiceDep,
) -> dict[str, Any]:
    campaign = await service.end_campaign(admin_id, body.campaign_id)
    logger.info("Campaign ended", extra=get_log_context(campaign_id=campaign.id, admin_id=admin_id))
    return _ok(campaign.to_dict())


@router.post("/admin/ai-campaign/reconcile")
async def reconcile_counter(admin_id: AdminId, service: QuotaServiceDep) -> dict[str, Any]:
    """Recompute the slot counter from the store and live reservations."""
    result = await service.reconcile_slot_counter()
    logger.info(
        f"Slot counter reconciled, drift={result.drift}",
        extra=get_log_context(admin_id=admin_id),
    )
    return _ok(result.to_dict())


@router.get("/admin/ai-campaign/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    admin_id: AdminId,
    service: AdminServiceDep,
    include_audit_logs: bool = False,
) -> dict[str, Any]:
    return _ok(await service.get_campaign(campaign_id, include_audit_logs))


@router.patch("/admin/ai-campaign/{campaign_id}")
async def update_campaign(
    campaign_id: str,
    data: CampaignUpdateRequest,
    admin_id: AdminId,
    service: AdminServiceDep,
) -> dict[str, Any]:
    """Apply a partial update; unchanged values are not written or audited."""
    patch = data.model_dump(exclude_unset=True)
    campaign = await service.update_campaign(campaign_id, patch, admin_id)
    return _ok(campaign.to_dict())
