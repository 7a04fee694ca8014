from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from platform_console.core.config import ACTION_REASON_MAX_LENGTH
from platform_console.core.database import atomic
from platform_console.core.errors import ConflictError, NotFoundError, ValidationError
from platform_console.core.timeutils import ensure_utc, utcnow
from platform_console.models.campaign import Campaign
from platform_console.schemas.audit_payloads import CampaignModerated
from platform_console.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)
CAMPAIGNS_PREFIX = "[CAMPAIGNS]"


def _approved_target(campaign: Campaign) -> str:
    scheduled_at = ensure_utc(campaign.scheduled_at)
    if scheduled_at is not None and scheduled_at > utcnow():
        return "scheduled"
    return "approved"


@dataclass(frozen=True)
class ModerationRule:
    sources: FrozenSet[str]
    audit_action: str
    target: Callable[[Campaign], str]


MODERATION_RULES: Dict[str, ModerationRule] = {
    "approve": ModerationRule(
        sources=frozenset({"pending_owner_approval"}),
        audit_action="campaign.approved",
        target=_approved_target,
    ),
    "disapprove": ModerationRule(
        sources=frozenset({"pending_owner_approval", "approved"}),
        audit_action="campaign.disapproved",
        target=lambda _campaign: "rejected",
    ),
}


class CampaignModeration:
    def __init__(self, db: Session, audit: AuditTrail) -> None:
        self.db = db
        self.audit = audit

    def moderate(
        self,
        campaign_id: int,
        action: str,
        *,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, object]:
        rule = MODERATION_RULES.get((action or "").strip().lower())
        if rule is None:
            raise ValidationError("action must be one of: approve, disapprove")
        clean_reason = (reason or "").strip()[:ACTION_REASON_MAX_LENGTH] or None

        with atomic(self.db):
            campaign = (
                self.db.query(Campaign)
                .filter(Campaign.id == campaign_id)
                .with_for_update()
                .first()
            )
            if not campaign:
                raise NotFoundError("Campaign not found")
            if campaign.status not in rule.sources:
                raise ConflictError(
                    f"Cannot {action} campaign in status '{campaign.status}'",
                    details={"campaign_id": campaign.id, "status": campaign.status},
                )

            previous_status = campaign.status
            campaign.status = rule.target(campaign)
            if rule.audit_action == "campaign.disapproved" and clean_reason:
                campaign.rejection_reason = clean_reason

            self.audit.append(
                tenant_id=campaign.tenant_id,
                actor_id=actor_id,
                action=rule.audit_action,
                entity_type="campaign",
                entity_id=campaign.id,
                details=CampaignModerated(
                    campaign_id=campaign.id,
                    previous_status=previous_status,
                    next_status=campaign.status,
                    reason=clean_reason,
                ),
            )
            result = {"id": campaign.id, "status": campaign.status, "previous_status": previous_status}

        logger.info(
            "%s %s campaign_id=%s %s -> %s",
            CAMPAIGNS_PREFIX,
            action,
            campaign_id,
            previous_status,
            result["status"],
        )
        return result
