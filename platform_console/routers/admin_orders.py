from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from platform_console.deps import get_order_actions, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.services.order_actions import OrderActions

router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"])


class OrderActionRequest(BaseModel):
    reason: Optional[str] = None


class ResendConfirmationRequest(BaseModel):
    channel: Optional[str] = None


class CancelStaleRequest(BaseModel):
    # Left untyped so a non-integer value is rejected with the domain error.
    staleMinutes: Any = None
    tenant_id: Optional[int] = Field(None, ge=1)


@router.post("/bulk/cancel-stale")
def cancel_stale_orders(
    payload: CancelStaleRequest,
    idempotency_key: Optional[str] = Header(None, alias="x-idempotency-key"),
    user: AdminUser = Depends(require_platform_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    outcome = actions.cancel_stale(
        stale_minutes=payload.staleMinutes,
        idempotency_key=idempotency_key,
        actor_id=user.id,
        tenant_id=payload.tenant_id,
    )
    return outcome.to_response()


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    payload: OrderActionRequest,
    idempotency_key: Optional[str] = Header(None, alias="x-idempotency-key"),
    user: AdminUser = Depends(require_platform_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    outcome = actions.cancel(
        order_id,
        reason=payload.reason,
        idempotency_key=idempotency_key,
        actor_id=user.id,
    )
    return outcome.to_response()


@router.post("/{order_id}/reopen")
def reopen_order(
    order_id: int,
    payload: OrderActionRequest,
    idempotency_key: Optional[str] = Header(None, alias="x-idempotency-key"),
    user: AdminUser = Depends(require_platform_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    outcome = actions.reopen(
        order_id,
        reason=payload.reason,
        idempotency_key=idempotency_key,
        actor_id=user.id,
    )
    return outcome.to_response()


@router.post("/{order_id}/resend-confirmation")
def resend_order_confirmation(
    order_id: int,
    payload: ResendConfirmationRequest,
    idempotency_key: Optional[str] = Header(None, alias="x-idempotency-key"),
    user: AdminUser = Depends(require_platform_admin),
    actions: OrderActions = Depends(get_order_actions),
):
    outcome = actions.resend_confirmation(
        order_id,
        channel=payload.channel,
        idempotency_key=idempotency_key,
        actor_id=user.id,
    )
    return outcome.to_response()
