import json
from datetime import timedelta

import pytest

from platform_console.core.errors import ConflictError, NotFoundError, ValidationError
from platform_console.core.timeutils import utcnow
from platform_console.models.audit_log import AuditLog
from platform_console.models.idempotency_record import IdempotencyRecord
from platform_console.models.order import Order
from platform_console.services.audit_trail import AuditTrail, parse_details
from platform_console.services.idempotency import IdempotencyGuard
from platform_console.services.order_actions import OrderActions
from tests.fixtures_data import (
    BURGER_HOUSE_ID,
    CANCELLED_ORDER_ID,
    COMPLETED_ORDER_ID,
    NO_CONTACT_ORDER_ID,
    PENDING_ORDER_ID,
    PIZZA_PLACE_ID,
    build_seeded_session,
)


def _actions():
    db = build_seeded_session()
    audit = AuditTrail(db)
    return db, OrderActions(db, audit, IdempotencyGuard(db, audit))


def _audit_count(db, action: str) -> int:
    return db.query(AuditLog).filter(AuditLog.action == action).count()


def test_cancel_pending_order_records_audit_with_key():
    db, actions = _actions()

    outcome = actions.cancel(PENDING_ORDER_ID, reason=" customer asked ", idempotency_key="k-1", actor_id=7)

    assert outcome.replayed is False
    assert outcome.result == {"order_id": PENDING_ORDER_ID, "status": "cancelled", "previous_status": "pending"}
    assert db.get(Order, PENDING_ORDER_ID).status == "cancelled"
    entry = db.query(AuditLog).filter(AuditLog.action == "order.cancelled").one()
    details = parse_details(entry.details_json)
    assert entry.actor_id == 7
    assert entry.tenant_id == BURGER_HOUSE_ID
    assert details["reason"] == "customer asked"
    assert details["idempotency_key"] == "k-1"
    assert details["previous_status"] == "pending"


def test_cancel_replay_returns_same_outcome_without_new_audit():
    db, actions = _actions()

    first = actions.cancel(PENDING_ORDER_ID, reason="dup", idempotency_key="k-1", actor_id=7)
    second = actions.cancel(PENDING_ORDER_ID, reason="dup", idempotency_key="k-1", actor_id=7)

    assert second.replayed is True
    assert second.result == first.result
    assert _audit_count(db, "order.cancelled") == 1
    assert db.query(IdempotencyRecord).count() == 1


def test_cancel_with_new_key_on_cancelled_order_conflicts():
    db, actions = _actions()
    actions.cancel(PENDING_ORDER_ID, reason="first", idempotency_key="k-1")

    with pytest.raises(ConflictError) as exc:
        actions.cancel(PENDING_ORDER_ID, reason="again", idempotency_key="k-2")

    assert "cancel" in exc.value.message
    assert "cancelled" in exc.value.message
    assert _audit_count(db, "order.cancelled") == 1
    assert db.query(IdempotencyRecord).count() == 1


def test_cancel_completed_order_is_rejected_without_side_effects():
    db, actions = _actions()

    with pytest.raises(ConflictError):
        actions.cancel(COMPLETED_ORDER_ID, reason="late", idempotency_key="k-1")

    assert db.get(Order, COMPLETED_ORDER_ID).status == "completed"
    assert db.query(AuditLog).count() == 0
    assert db.query(IdempotencyRecord).count() == 0


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_blank_reason_is_rejected_before_lookup(reason):
    db, actions = _actions()

    with pytest.raises(ValidationError):
        actions.cancel(999, reason=reason, idempotency_key="k-1")

    assert db.query(AuditLog).count() == 0


def test_missing_key_is_rejected():
    db, actions = _actions()

    with pytest.raises(ValidationError):
        actions.reopen(CANCELLED_ORDER_ID, reason="oops", idempotency_key=None)

    assert db.get(Order, CANCELLED_ORDER_ID).status == "cancelled"


def test_unknown_order_is_not_found():
    _, actions = _actions()

    with pytest.raises(NotFoundError):
        actions.cancel(999, reason="x", idempotency_key="k-1")


def test_reason_is_truncated():
    db, actions = _actions()

    actions.cancel(PENDING_ORDER_ID, reason="r" * 900, idempotency_key="k-1")

    entry = db.query(AuditLog).one()
    assert len(parse_details(entry.details_json)["reason"]) == 500


def test_reopen_cancelled_order_returns_to_pending():
    db, actions = _actions()

    outcome = actions.reopen(CANCELLED_ORDER_ID, reason="cancelled by mistake", idempotency_key="r-1")

    assert outcome.result["status"] == "pending"
    assert db.get(Order, CANCELLED_ORDER_ID).status == "pending"
    assert _audit_count(db, "order.reopened") == 1


def test_reopen_pending_order_conflicts():
    _, actions = _actions()

    with pytest.raises(ConflictError):
        actions.reopen(PENDING_ORDER_ID, reason="nope", idempotency_key="r-1")


def test_resend_confirmation_queues_and_replays():
    db, actions = _actions()

    first = actions.resend_confirmation(PENDING_ORDER_ID, channel="SMS", idempotency_key="c-1", actor_id=7)
    second = actions.resend_confirmation(PENDING_ORDER_ID, channel="sms", idempotency_key="c-1", actor_id=7)

    assert first.result == {"order_id": PENDING_ORDER_ID, "channel": "sms", "deliveryStatus": "queued"}
    assert second.replayed is True
    entry = db.query(AuditLog).filter(AuditLog.action == "order.confirmation_resent").one()
    assert parse_details(entry.details_json)["recipient"] == "+15550001111"


def test_resend_confirmation_validations():
    _, actions = _actions()

    with pytest.raises(ValidationError):
        actions.resend_confirmation(PENDING_ORDER_ID, channel="fax", idempotency_key="c-1")
    with pytest.raises(ValidationError):
        actions.resend_confirmation(NO_CONTACT_ORDER_ID, channel="email", idempotency_key="c-2")
    with pytest.raises(ConflictError):
        actions.resend_confirmation(CANCELLED_ORDER_ID, channel="sms", idempotency_key="c-3")


def _add_old_order(db, order_id: int, tenant_id: int, status: str, minutes_ago: int) -> None:
    db.add(
        Order(
            id=order_id,
            tenant_id=tenant_id,
            status=status,
            created_at=utcnow() - timedelta(minutes=minutes_ago),
        )
    )
    db.commit()


def test_cancel_stale_cancels_only_old_pending_and_accepted():
    db, actions = _actions()
    _add_old_order(db, 500, BURGER_HOUSE_ID, "pending", 120)
    _add_old_order(db, 501, PIZZA_PLACE_ID, "accepted", 90)
    _add_old_order(db, 502, PIZZA_PLACE_ID, "preparing", 120)
    _add_old_order(db, 503, BURGER_HOUSE_ID, "pending", 5)

    outcome = actions.cancel_stale(stale_minutes=60, idempotency_key="bulk-1", actor_id=7)

    assert outcome.result == {"cancelledOrderIds": [500, 501], "totalCancelled": 2}
    assert db.get(Order, 502).status == "preparing"
    assert db.get(Order, 503).status == "pending"
    entry = db.query(AuditLog).filter(AuditLog.action == "orders.stale_cancelled").one()
    assert entry.entity_id == "bulk"
    assert parse_details(entry.details_json)["cancelled_order_ids"] == [500, 501]

    replay = actions.cancel_stale(stale_minutes=60, idempotency_key="bulk-1", actor_id=7)
    assert replay.replayed is True
    assert replay.result == outcome.result
    assert _audit_count(db, "orders.stale_cancelled") == 1


def test_cancel_stale_scoped_to_tenant():
    db, actions = _actions()
    _add_old_order(db, 500, BURGER_HOUSE_ID, "pending", 120)
    _add_old_order(db, 501, PIZZA_PLACE_ID, "pending", 120)

    outcome = actions.cancel_stale(stale_minutes=60, idempotency_key="bulk-1", tenant_id=PIZZA_PLACE_ID)

    assert outcome.result["cancelledOrderIds"] == [501]
    assert db.query(AuditLog).one().entity_id == f"bulk:{PIZZA_PLACE_ID}"


@pytest.mark.parametrize("stale_minutes", [0, -5, 10081, "60", 1.5, True, None])
def test_cancel_stale_rejects_bad_window(stale_minutes):
    db, actions = _actions()

    with pytest.raises(ValidationError):
        actions.cancel_stale(stale_minutes=stale_minutes, idempotency_key="bulk-1")

    assert db.query(AuditLog).count() == 0


def _seed_legacy_entry(db, action: str, entity_type: str, entity_id: str, details: dict) -> None:
    db.add(AuditLog(action=action, entity_type=entity_type, entity_id=entity_id, details_json=json.dumps(details)))
    db.commit()


def test_resend_confirmation_legacy_replay_keeps_response_shape():
    db, actions = _actions()
    fresh = actions.resend_confirmation(PENDING_ORDER_ID, channel="sms", idempotency_key="new")
    _seed_legacy_entry(db, "order.confirmation_resent", "order", str(PENDING_ORDER_ID), {"idempotency_key": "old"})

    legacy = actions.resend_confirmation(PENDING_ORDER_ID, channel="sms", idempotency_key="old")

    assert legacy.replayed is True
    assert legacy.to_response().keys() == fresh.to_response().keys()
    assert legacy.result == {"order_id": PENDING_ORDER_ID, "channel": "sms", "deliveryStatus": "queued"}
    assert _audit_count(db, "order.confirmation_resent") == 2


def test_resend_confirmation_replays_typed_legacy_payload():
    db, actions = _actions()
    _seed_legacy_entry(
        db,
        "order.confirmation_resent",
        "order",
        str(PENDING_ORDER_ID),
        {
            "v": 1,
            "order_id": PENDING_ORDER_ID,
            "channel": "email",
            "recipient": "guest@example.com",
            "delivery_status": "queued",
            "idempotency_key": "old",
        },
    )

    outcome = actions.resend_confirmation(PENDING_ORDER_ID, channel="email", idempotency_key="old")

    assert outcome.replayed is True
    assert outcome.result == {"order_id": PENDING_ORDER_ID, "channel": "email", "deliveryStatus": "queued"}


def test_cancel_stale_legacy_replay_keeps_response_shape():
    db, actions = _actions()
    _seed_legacy_entry(
        db,
        "orders.stale_cancelled",
        "order_batch",
        "bulk",
        {
            "v": 1,
            "stale_minutes": 60,
            "cancelled_order_ids": [41, 42],
            "total_cancelled": 2,
            "idempotency_key": "old-bulk",
        },
    )
    _seed_legacy_entry(db, "orders.stale_cancelled", "order_batch", "bulk", {"idempotency_key": "older-bulk"})

    typed = actions.cancel_stale(stale_minutes=60, idempotency_key="old-bulk")
    untyped = actions.cancel_stale(stale_minutes=60, idempotency_key="older-bulk")

    assert typed.to_response() == {"cancelledOrderIds": [41, 42], "totalCancelled": 2, "idempotent_replay": True}
    assert untyped.to_response() == {"cancelledOrderIds": [], "totalCancelled": 0, "idempotent_replay": True}
    assert _audit_count(db, "orders.stale_cancelled") == 2


def test_cancel_legacy_replay_without_typed_payload_keeps_response_shape():
    db, actions = _actions()
    _seed_legacy_entry(
        db,
        "order.cancelled",
        "order",
        str(PENDING_ORDER_ID),
        {"idempotency_key": "old", "previous_status": "pending", "next_status": "cancelled"},
    )

    outcome = actions.cancel(PENDING_ORDER_ID, reason="dup", idempotency_key="old")

    assert outcome.result == {"order_id": PENDING_ORDER_ID, "status": "cancelled", "previous_status": "pending"}
    assert db.get(Order, PENDING_ORDER_ID).status == "pending"
