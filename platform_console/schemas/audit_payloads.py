"""Typed detail payloads for audit log entries, keyed by action name.

Writers must use one of these shapes. Readers still accept legacy rows whose
details are free text or an untyped dict.
"""
from typing import Any, ClassVar, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict


class AuditPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: ClassVar[int] = 1


class OrderStatusChanged(AuditPayload):
    order_id: int
    previous_status: str
    next_status: str
    reason: str
    idempotency_key: str


class OrderConfirmationResent(AuditPayload):
    order_id: int
    channel: Literal["sms", "email"]
    recipient: str
    delivery_status: Literal["queued"] = "queued"
    idempotency_key: str


class StaleOrdersCancelled(AuditPayload):
    stale_minutes: int
    tenant_id: Optional[int] = None
    cancelled_order_ids: List[int]
    total_cancelled: int
    idempotency_key: str


class CampaignModerated(AuditPayload):
    campaign_id: int
    previous_status: str
    next_status: str
    reason: Optional[str] = None


class RestaurantStatusChanged(AuditPayload):
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    restaurant_id: int
    restaurant_name: str
    users_updated: int
    campaigns_updated: int
    orders_retained: bool = True


class TaskCreated(AuditPayload):
    task_id: int
    scope: Literal["restaurant", "company"]
    title: str
    tenant_id: Optional[int] = None
    type: str = "one_time"


class TaskGroupCreated(AuditPayload):
    parent_task_group_id: str
    company_id: int
    title: str
    created_count: int
    task_ids: List[int]


class TaskUpdated(AuditPayload):
    task_id: int
    parent_task_group_id: Optional[str] = None
    applied_to_group: bool
    updated_count: int
    changes: Dict[str, Any]


class TaskDeleted(AuditPayload):
    task_id: int
    parent_task_group_id: Optional[str] = None
    applied_to_group: bool
    deleted_count: int
    task_ids: List[int]


class DemoBookingConverted(AuditPayload):
    demo_booking_id: int
    tenant_id: int
    task_id: int
    resolved_by: Literal["explicit", "name_match"]


AUDIT_PAYLOADS: Dict[str, Type[AuditPayload]] = {
    "order.cancelled": OrderStatusChanged,
    "order.reopened": OrderStatusChanged,
    "order.confirmation_resent": OrderConfirmationResent,
    "orders.stale_cancelled": StaleOrdersCancelled,
    "campaign.approved": CampaignModerated,
    "campaign.disapproved": CampaignModerated,
    "restaurant.activated": RestaurantStatusChanged,
    "restaurant.deactivated": RestaurantStatusChanged,
    "task.created": TaskCreated,
    "task.group_created": TaskGroupCreated,
    "task.updated": TaskUpdated,
    "task.deleted": TaskDeleted,
    "demo_booking.converted": DemoBookingConverted,
}
