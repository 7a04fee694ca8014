from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from platform_console.core.database import atomic
from platform_console.core.errors import ConflictError, NotFoundError, ValidationError
from platform_console.core.startup_checks import SchemaCapabilities
from platform_console.models.demo_booking import DemoBooking
from platform_console.models.tenant import Tenant
from platform_console.schemas.audit_payloads import DemoBookingConverted
from platform_console.services.audit_trail import AuditTrail
from platform_console.services.task_fanout import TaskFanoutEngine, task_to_dict

logger = logging.getLogger(__name__)
CONVERSION_PREFIX = "[CONVERSION]"


def default_description(booking: DemoBooking) -> str:
    lines = [f"Demo booking #{booking.id} converted to onboarding."]
    contact = ", ".join(part for part in (booking.name, booking.email, booking.phone) if part)
    if contact:
        lines.append(f"Contact: {contact}")
    if booking.booking_date:
        lines.append(f"Demo held on {booking.booking_date.isoformat()} {booking.booking_time or ''}".rstrip())
    if booking.notes:
        lines.append(f"Notes: {booking.notes}")
    return "\n".join(lines)


class LeadConversion:
    """Turns a demo booking into a high-priority onboarding task for a restaurant."""

    def __init__(
        self,
        db: Session,
        audit: AuditTrail,
        tasks: TaskFanoutEngine,
        capabilities: SchemaCapabilities,
    ) -> None:
        self.db = db
        self.audit = audit
        self.tasks = tasks
        self.capabilities = capabilities

    def _resolve_tenant(self, booking: DemoBooking, restaurant_id: Optional[int]) -> Tuple[Tenant, str]:
        if restaurant_id is not None:
            tenant = self.db.query(Tenant).filter(Tenant.id == restaurant_id).first()
            if not tenant:
                raise NotFoundError("Restaurant not found")
            return tenant, "explicit"

        name = (booking.restaurant_name or "").strip().lower()
        tenant = None
        if name:
            tenant = (
                self.db.query(Tenant)
                .filter(func.lower(Tenant.name) == name)
                .order_by(Tenant.id.asc())
                .first()
            )
        if not tenant:
            raise ValidationError("Could not resolve a restaurant for this demo booking; provide restaurant_id")
        return tenant, "name_match"

    def convert(
        self,
        booking_id: int,
        *,
        restaurant_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
        due_date: Optional[datetime] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with atomic(self.db):
            booking = (
                self.db.query(DemoBooking)
                .filter(DemoBooking.id == booking_id)
                .with_for_update()
                .first()
            )
            if not booking:
                raise NotFoundError("Demo booking not found")
            if booking.converted_task_id is not None or booking.status == "converted":
                raise ConflictError(
                    "Demo booking has already been converted",
                    details={"converted_task_id": booking.converted_task_id},
                )

            tenant, resolved_by = self._resolve_tenant(booking, restaurant_id)
            task = self.tasks.build_restaurant_task(
                tenant,
                title=(title or "").strip() or f"Onboarding: {tenant.name}",
                description=(description or "").strip() or default_description(booking),
                priority="high",
                task_type="onboarding",
                assigned_to=assigned_to,
                due_date=due_date,
                actor_id=actor_id,
            )

            booking.status = "converted"
            if self.capabilities.demo_bookings_track_conversion_stage:
                booking.conversion_stage = "won"
            booking.converted_task_id = task.id

            self.audit.append(
                tenant_id=tenant.id,
                actor_id=actor_id,
                action="demo_booking.converted",
                entity_type="demo_booking",
                entity_id=booking.id,
                details=DemoBookingConverted(
                    demo_booking_id=booking.id,
                    tenant_id=tenant.id,
                    task_id=task.id,
                    resolved_by=resolved_by,
                ),
            )
            result = {
                "demo_booking_id": booking.id,
                "restaurant_id": tenant.id,
                "task": task_to_dict(task),
            }

        logger.info(
            "%s booking_id=%s tenant_id=%s task_id=%s resolved_by=%s",
            CONVERSION_PREFIX,
            booking_id,
            result["restaurant_id"],
            result["task"]["id"],
            resolved_by,
        )
        return result
