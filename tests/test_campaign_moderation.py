from datetime import timedelta

import pytest

from platform_console.core.errors import ConflictError, NotFoundError, ValidationError
from platform_console.core.timeutils import utcnow
from platform_console.models.audit_log import AuditLog
from platform_console.models.campaign import Campaign
from platform_console.services.audit_trail import AuditTrail, parse_details
from platform_console.services.campaign_moderation import CampaignModeration
from tests.fixtures_data import (
    APPROVED_CAMPAIGN_ID,
    DRAFT_CAMPAIGN_ID,
    FUTURE_CAMPAIGN_ID,
    PENDING_CAMPAIGN_ID,
    build_seeded_session,
)


def _moderation():
    db = build_seeded_session()
    return db, CampaignModeration(db, AuditTrail(db))


def test_approve_without_schedule_becomes_approved():
    db, moderation = _moderation()

    result = moderation.moderate(PENDING_CAMPAIGN_ID, "approve", actor_id=7)

    assert result["status"] == "approved"
    entry = db.query(AuditLog).one()
    assert entry.action == "campaign.approved"
    assert parse_details(entry.details_json)["previous_status"] == "pending_owner_approval"


def test_approve_with_future_schedule_becomes_scheduled():
    db, moderation = _moderation()

    result = moderation.moderate(FUTURE_CAMPAIGN_ID, "approve")

    assert result["status"] == "scheduled"
    assert db.get(Campaign, FUTURE_CAMPAIGN_ID).status == "scheduled"


def test_approve_with_past_schedule_becomes_approved():
    db, moderation = _moderation()
    campaign = db.get(Campaign, FUTURE_CAMPAIGN_ID)
    campaign.scheduled_at = utcnow() - timedelta(hours=1)
    db.commit()

    assert moderation.moderate(FUTURE_CAMPAIGN_ID, "approve")["status"] == "approved"


def test_disapprove_approved_campaign_stores_reason():
    db, moderation = _moderation()

    result = moderation.moderate(APPROVED_CAMPAIGN_ID, "disapprove", reason="  misleading offer  ", actor_id=7)

    assert result["status"] == "rejected"
    campaign = db.get(Campaign, APPROVED_CAMPAIGN_ID)
    assert campaign.rejection_reason == "misleading offer"
    assert db.query(AuditLog).one().action == "campaign.disapproved"


@pytest.mark.parametrize(
    "campaign_id, action",
    [
        (DRAFT_CAMPAIGN_ID, "approve"),
        (DRAFT_CAMPAIGN_ID, "disapprove"),
        (APPROVED_CAMPAIGN_ID, "approve"),
    ],
)
def test_illegal_source_status_conflicts_without_audit(campaign_id, action):
    db, moderation = _moderation()
    before = db.get(Campaign, campaign_id).status

    with pytest.raises(ConflictError) as exc:
        moderation.moderate(campaign_id, action)

    assert action in exc.value.message
    assert before in exc.value.message
    assert db.get(Campaign, campaign_id).status == before
    assert db.query(AuditLog).count() == 0


def test_unknown_action_and_campaign():
    _, moderation = _moderation()

    with pytest.raises(ValidationError):
        moderation.moderate(PENDING_CAMPAIGN_ID, "publish")
    with pytest.raises(NotFoundError):
        moderation.moderate(999, "approve")
