from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends

from platform_console.deps import get_lead_conversion, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.schemas.tasks import DemoBookingConvert
from platform_console.services.lead_conversion import LeadConversion

router = APIRouter(prefix="/api/admin/demo-bookings", tags=["admin-demo-bookings"])


@router.post("/{booking_id}/convert")
def convert_demo_booking(
    booking_id: int,
    payload: Optional[DemoBookingConvert] = Body(None),
    user: AdminUser = Depends(require_platform_admin),
    conversion: LeadConversion = Depends(get_lead_conversion),
):
    payload = payload or DemoBookingConvert()
    return conversion.convert(
        booking_id,
        restaurant_id=payload.restaurant_id,
        assigned_to=payload.assigned_to,
        due_date=payload.due_date,
        title=payload.title,
        description=payload.description,
        actor_id=user.id,
    )
