from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from platform_console.deps import get_campaign_moderation, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.services.campaign_moderation import CampaignModeration

router = APIRouter(prefix="/api/admin/campaigns", tags=["admin-campaigns"])


class ModerationRequest(BaseModel):
    reason: Optional[str] = None


@router.post("/{campaign_id}/approve")
def approve_campaign(
    campaign_id: int,
    payload: Optional[ModerationRequest] = Body(None),
    user: AdminUser = Depends(require_platform_admin),
    moderation: CampaignModeration = Depends(get_campaign_moderation),
):
    reason = payload.reason if payload else None
    result = moderation.moderate(campaign_id, "approve", reason=reason, actor_id=user.id)
    return {"campaign": {"id": result["id"], "status": result["status"]}}


@router.post("/{campaign_id}/disapprove")
def disapprove_campaign(
    campaign_id: int,
    payload: Optional[ModerationRequest] = Body(None),
    user: AdminUser = Depends(require_platform_admin),
    moderation: CampaignModeration = Depends(get_campaign_moderation),
):
    reason = payload.reason if payload else None
    result = moderation.moderate(campaign_id, "disapprove", reason=reason, actor_id=user.id)
    return {"campaign": {"id": result["id"], "status": result["status"]}}
