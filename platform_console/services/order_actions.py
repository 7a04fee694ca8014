from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from platform_console.core.config import ACTION_REASON_MAX_LENGTH, STALE_ORDER_MAX_MINUTES
from platform_console.core.database import atomic
from platform_console.core.errors import ConflictError, NotFoundError, ValidationError
from platform_console.core.timeutils import utcnow
from platform_console.models.audit_log import AuditLog
from platform_console.models.order import Order
from platform_console.schemas.audit_payloads import (
    OrderConfirmationResent,
    OrderStatusChanged,
    StaleOrdersCancelled,
)
from platform_console.services.audit_trail import AuditTrail, parse_details, read_payload
from platform_console.services.idempotency import (
    IdempotencyGuard,
    IdempotentOutcome,
    normalize_idempotency_key,
)

logger = logging.getLogger(__name__)
ORDERS_PREFIX = "[ORDERS]"

CANCELLABLE_STATUSES: FrozenSet[str] = frozenset({"pending", "accepted", "preparing", "ready"})
REOPENABLE_STATUSES: FrozenSet[str] = frozenset({"cancelled"})
STALE_CANCELLABLE_STATUSES: FrozenSet[str] = frozenset({"pending", "accepted"})
CONFIRMATION_CHANNELS = ("sms", "email")


@dataclass(frozen=True)
class OrderTransition:
    name: str
    audit_action: str
    sources: FrozenSet[str]
    target: str


ORDER_TRANSITIONS: Dict[str, OrderTransition] = {
    "cancel": OrderTransition("cancel", "order.cancelled", CANCELLABLE_STATUSES, "cancelled"),
    "reopen": OrderTransition("reopen", "order.reopened", REOPENABLE_STATUSES, "pending"),
}


def normalize_reason(reason: Optional[str], action: str) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError(f"A reason is required to {action} an order")
    return cleaned[:ACTION_REASON_MAX_LENGTH]


# Replay builders rebuild the first call's response from its audit entry.
# Untyped legacy rows fall back to whatever fields their details still carry.


def _replay_status_change(entry: AuditLog) -> Dict[str, Any]:
    payload = read_payload(entry.action, entry.details_json)
    if isinstance(payload, OrderStatusChanged):
        return {
            "order_id": payload.order_id,
            "status": payload.next_status,
            "previous_status": payload.previous_status,
        }
    details = parse_details(entry.details_json)
    return {
        "order_id": int(entry.entity_id),
        "status": details.get("next_status"),
        "previous_status": details.get("previous_status"),
    }


def _replay_confirmation(entry: AuditLog, requested_channel: str) -> Dict[str, Any]:
    payload = read_payload(entry.action, entry.details_json)
    if isinstance(payload, OrderConfirmationResent):
        return {
            "order_id": payload.order_id,
            "channel": payload.channel,
            "deliveryStatus": payload.delivery_status,
        }
    details = parse_details(entry.details_json)
    return {
        "order_id": int(entry.entity_id),
        "channel": details.get("channel") or requested_channel,
        "deliveryStatus": details.get("delivery_status", "queued"),
    }


def _replay_stale_cancellation(entry: AuditLog) -> Dict[str, Any]:
    payload = read_payload(entry.action, entry.details_json)
    if isinstance(payload, StaleOrdersCancelled):
        return {
            "cancelledOrderIds": payload.cancelled_order_ids,
            "totalCancelled": payload.total_cancelled,
        }
    details = parse_details(entry.details_json)
    cancelled_ids = details.get("cancelled_order_ids") or []
    return {
        "cancelledOrderIds": cancelled_ids,
        "totalCancelled": details.get("total_cancelled", len(cancelled_ids)),
    }


class OrderActions:
    """Platform-admin interventions on orders; every one needs an idempotency key."""

    def __init__(self, db: Session, audit: AuditTrail, idempotency: IdempotencyGuard) -> None:
        self.db = db
        self.audit = audit
        self.idempotency = idempotency

    def _get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def _transition(
        self,
        transition: OrderTransition,
        order_id: int,
        reason: Optional[str],
        idempotency_key: Optional[str],
        actor_id: Optional[int],
    ) -> IdempotentOutcome:
        clean_reason = normalize_reason(reason, transition.name)
        key = normalize_idempotency_key(idempotency_key)

        with atomic(self.db):
            order = self._get_order(order_id)

            def execute(guarded_key: str):
                if order.status not in transition.sources:
                    raise ConflictError(
                        f"Cannot {transition.name} order in status '{order.status}'",
                        details={"order_id": order.id, "status": order.status},
                    )
                previous_status = order.status
                order.status = transition.target
                entry = self.audit.append(
                    tenant_id=order.tenant_id,
                    actor_id=actor_id,
                    action=transition.audit_action,
                    entity_type="order",
                    entity_id=order.id,
                    details=OrderStatusChanged(
                        order_id=order.id,
                        previous_status=previous_status,
                        next_status=order.status,
                        reason=clean_reason,
                        idempotency_key=guarded_key,
                    ),
                )
                result = {
                    "order_id": order.id,
                    "status": order.status,
                    "previous_status": previous_status,
                }
                return result, entry

            outcome = self.idempotency.check_or_execute(
                entity_type="order",
                entity_id=order_id,
                action=transition.audit_action,
                idempotency_key=key,
                execute=execute,
                replay=_replay_status_change,
            )

        logger.info(
            "%s %s order_id=%s replayed=%s",
            ORDERS_PREFIX,
            transition.name,
            order_id,
            outcome.replayed,
        )
        return outcome

    def cancel(
        self,
        order_id: int,
        *,
        reason: Optional[str],
        idempotency_key: Optional[str],
        actor_id: Optional[int] = None,
    ) -> IdempotentOutcome:
        return self._transition(ORDER_TRANSITIONS["cancel"], order_id, reason, idempotency_key, actor_id)

    def reopen(
        self,
        order_id: int,
        *,
        reason: Optional[str],
        idempotency_key: Optional[str],
        actor_id: Optional[int] = None,
    ) -> IdempotentOutcome:
        return self._transition(ORDER_TRANSITIONS["reopen"], order_id, reason, idempotency_key, actor_id)

    def resend_confirmation(
        self,
        order_id: int,
        *,
        channel: Optional[str],
        idempotency_key: Optional[str],
        actor_id: Optional[int] = None,
    ) -> IdempotentOutcome:
        normalized_channel = (channel or "").strip().lower()
        if normalized_channel not in CONFIRMATION_CHANNELS:
            raise ValidationError("channel must be one of: sms, email")
        key = normalize_idempotency_key(idempotency_key)

        with atomic(self.db):
            order = self._get_order(order_id)

            def execute(guarded_key: str):
                if order.status == "cancelled":
                    raise ConflictError("Cannot resend confirmation for a cancelled order")
                recipient = order.customer_phone if normalized_channel == "sms" else order.customer_email
                if not recipient:
                    missing = "phone number" if normalized_channel == "sms" else "email address"
                    raise ValidationError(f"Order has no customer {missing} on file")
                entry = self.audit.append(
                    tenant_id=order.tenant_id,
                    actor_id=actor_id,
                    action="order.confirmation_resent",
                    entity_type="order",
                    entity_id=order.id,
                    details=OrderConfirmationResent(
                        order_id=order.id,
                        channel=normalized_channel,
                        recipient=recipient,
                        idempotency_key=guarded_key,
                    ),
                )
                return {"order_id": order.id, "channel": normalized_channel, "deliveryStatus": "queued"}, entry

            outcome = self.idempotency.check_or_execute(
                entity_type="order",
                entity_id=order_id,
                action="order.confirmation_resent",
                idempotency_key=key,
                execute=execute,
                replay=lambda entry: _replay_confirmation(entry, normalized_channel),
            )

        logger.info(
            "%s confirmation queued order_id=%s channel=%s replayed=%s",
            ORDERS_PREFIX,
            order_id,
            normalized_channel,
            outcome.replayed,
        )
        return outcome

    def cancel_stale(
        self,
        *,
        stale_minutes: Any,
        idempotency_key: Optional[str],
        actor_id: Optional[int] = None,
        tenant_id: Optional[int] = None,
    ) -> IdempotentOutcome:
        if isinstance(stale_minutes, bool) or not isinstance(stale_minutes, int):
            raise ValidationError("staleMinutes must be an integer")
        if stale_minutes < 1 or stale_minutes > STALE_ORDER_MAX_MINUTES:
            raise ValidationError(f"staleMinutes must be between 1 and {STALE_ORDER_MAX_MINUTES}")
        key = normalize_idempotency_key(idempotency_key)
        scope_ref = "bulk" if tenant_id is None else f"bulk:{tenant_id}"

        with atomic(self.db):

            def execute(guarded_key: str):
                cutoff = utcnow() - timedelta(minutes=stale_minutes)
                query = self.db.query(Order).filter(
                    Order.status.in_(sorted(STALE_CANCELLABLE_STATUSES)),
                    Order.created_at < cutoff,
                )
                if tenant_id is not None:
                    query = query.filter(Order.tenant_id == tenant_id)
                stale_orders = query.order_by(Order.id.asc()).with_for_update().all()
                for order in stale_orders:
                    order.status = "cancelled"
                cancelled_ids = [order.id for order in stale_orders]

                entry = self.audit.append(
                    tenant_id=tenant_id,
                    actor_id=actor_id,
                    action="orders.stale_cancelled",
                    entity_type="order_batch",
                    entity_id=scope_ref,
                    details=StaleOrdersCancelled(
                        stale_minutes=stale_minutes,
                        tenant_id=tenant_id,
                        cancelled_order_ids=cancelled_ids,
                        total_cancelled=len(cancelled_ids),
                        idempotency_key=guarded_key,
                    ),
                )
                return {"cancelledOrderIds": cancelled_ids, "totalCancelled": len(cancelled_ids)}, entry

            outcome = self.idempotency.check_or_execute(
                entity_type="order_batch",
                entity_id=scope_ref,
                action="orders.stale_cancelled",
                idempotency_key=key,
                execute=execute,
                replay=_replay_stale_cancellation,
            )

        logger.info(
            "%s stale cancellation total=%s stale_minutes=%s replayed=%s",
            ORDERS_PREFIX,
            outcome.result.get("totalCancelled"),
            stale_minutes,
            outcome.replayed,
        )
        return outcome
