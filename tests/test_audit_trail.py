import json
from datetime import timedelta

import pytest

from platform_console.core.errors import ValidationError
from platform_console.core.timeutils import utcnow
from platform_console.models.audit_log import AuditLog, AuditLogImmutableError
from platform_console.models.idempotency_record import IdempotencyRecord
from platform_console.schemas.audit_payloads import CampaignModerated, OrderStatusChanged
from platform_console.services.audit_trail import AuditQuery, AuditTrail, parse_details, read_payload
from tests.fixtures_data import build_session


def _append_cancel(audit: AuditTrail, order_id: int, key: str, tenant_id: int = 1) -> AuditLog:
    return audit.append(
        tenant_id=tenant_id,
        actor_id=7,
        action="order.cancelled",
        entity_type="order",
        entity_id=order_id,
        details=OrderStatusChanged(
            order_id=order_id,
            previous_status="pending",
            next_status="cancelled",
            reason="customer asked",
            idempotency_key=key,
        ),
    )


def test_append_serializes_typed_payload_with_version():
    db = build_session()
    audit = AuditTrail(db)

    entry = _append_cancel(audit, 100, "key-1")
    db.commit()

    stored = json.loads(entry.details_json)
    assert entry.id is not None
    assert entry.entity_id == "100"
    assert stored["v"] == 1
    assert stored["idempotency_key"] == "key-1"
    assert isinstance(read_payload(entry.action, entry.details_json), OrderStatusChanged)


def test_append_validates_mapping_against_registered_shape():
    db = build_session()
    audit = AuditTrail(db)

    with pytest.raises(ValidationError):
        audit.append(
            tenant_id=1,
            actor_id=7,
            action="campaign.approved",
            entity_type="campaign",
            entity_id=5,
            details={"campaign_id": 5, "unexpected": True},
        )


def test_append_rejects_payload_of_another_action():
    db = build_session()
    audit = AuditTrail(db)

    with pytest.raises(ValidationError):
        audit.append(
            tenant_id=1,
            actor_id=7,
            action="order.cancelled",
            entity_type="order",
            entity_id=5,
            details=CampaignModerated(campaign_id=5, previous_status="approved", next_status="rejected"),
        )


def test_unregistered_action_stores_plain_json():
    db = build_session()
    audit = AuditTrail(db)

    entry = audit.append(tenant_id=None, actor_id=None, action="legacy.note", details={"text": "hello"})

    assert parse_details(entry.details_json) == {"text": "hello"}
    assert read_payload(entry.action, entry.details_json) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, {}),
        ("", {}),
        ('{"a": 1}', {"a": 1}),
        ("[1, 2]", {"raw": "[1, 2]"}),
        ("not json at all", {"raw": "not json at all"}),
    ],
)
def test_parse_details_never_raises(raw, expected):
    assert parse_details(raw) == expected


def test_entries_cannot_be_updated_or_deleted():
    db = build_session()
    audit = AuditTrail(db)
    entry = _append_cancel(audit, 100, "key-1")
    db.commit()

    entry.action = "order.reopened"
    with pytest.raises(AuditLogImmutableError):
        db.flush()
    db.rollback()

    db.delete(db.get(AuditLog, entry.id))
    with pytest.raises(AuditLogImmutableError):
        db.flush()
    db.rollback()

    assert db.query(AuditLog).count() == 1


def test_query_filters_and_paginates_newest_first():
    db = build_session()
    audit = AuditTrail(db)
    for index in range(5):
        _append_cancel(audit, 100 + index, f"key-{index}", tenant_id=1 if index < 4 else 2)
    audit.append(tenant_id=1, actor_id=9, action="legacy.note", details={"text": "x"})
    db.commit()

    page = audit.query(AuditQuery(tenant_id=1, action="order.cancelled", limit=3))

    assert page.total == 4
    assert page.has_more is True
    assert [entry["entity_id"] for entry in page.entries] == ["103", "102", "101"]

    second = audit.query(AuditQuery(tenant_id=1, action="order.cancelled", limit=3, offset=3))
    assert [entry["entity_id"] for entry in second.entries] == ["100"]
    assert second.has_more is False

    by_actor = audit.query(AuditQuery(actor_id=9))
    assert by_actor.total == 1

    future = audit.query(AuditQuery(created_from=utcnow() + timedelta(hours=1)))
    assert future.total == 0


def test_query_clamps_limit():
    db = build_session()
    audit = AuditTrail(db)

    assert audit.query(AuditQuery(limit=0)).limit == 1
    assert audit.query(AuditQuery(limit=10_000)).limit == 500


def test_distinct_actions_counts_each_action():
    db = build_session()
    audit = AuditTrail(db)
    _append_cancel(audit, 100, "a")
    _append_cancel(audit, 101, "b")
    audit.append(tenant_id=None, actor_id=None, action="legacy.note", details={"text": "x"})
    db.commit()

    assert audit.distinct_actions() == [
        {"action": "legacy.note", "count": 1},
        {"action": "order.cancelled", "count": 2},
    ]


def test_find_by_idempotency_key_matches_parsed_field_only():
    db = build_session()
    audit = AuditTrail(db)
    _append_cancel(audit, 100, "key-10")
    db.add(
        AuditLog(
            tenant_id=1,
            action="order.cancelled",
            entity_type="order",
            entity_id="100",
            details_json="free text mentioning key-1",
        )
    )
    db.commit()

    assert audit.find_by_idempotency_key(
        entity_type="order", entity_id=100, action="order.cancelled", idempotency_key="key-1"
    ) is None
    found = audit.find_by_idempotency_key(
        entity_type="order", entity_id=100, action="order.cancelled", idempotency_key="key-10"
    )
    assert found is not None


def test_find_by_idempotency_key_skips_entries_tracked_by_marker_rows():
    db = build_session()
    audit = AuditTrail(db)
    tracked = _append_cancel(audit, 100, "key-1")
    db.add(
        IdempotencyRecord(
            entity_type="order",
            entity_id="100",
            action="order.cancelled",
            idempotency_key="key-1",
            audit_log_id=tracked.id,
            result_json="{}",
        )
    )
    db.commit()

    assert audit.find_by_idempotency_key(
        entity_type="order", entity_id=100, action="order.cancelled", idempotency_key="key-1"
    ) is None


def test_find_by_idempotency_key_handles_keys_needing_json_escapes():
    db = build_session()
    audit = AuditTrail(db)
    key = 'quote"d\\key-100%_'
    _append_cancel(audit, 100, key)
    _append_cancel(audit, 100, "plain-key")
    db.commit()

    found = audit.find_by_idempotency_key(
        entity_type="order", entity_id=100, action="order.cancelled", idempotency_key=key
    )

    assert found is not None
    assert parse_details(found.details_json)["idempotency_key"] == key
