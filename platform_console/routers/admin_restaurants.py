from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from platform_console.core.errors import ValidationError
from platform_console.deps import get_tenant_status_service, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.services.tenant_status import TenantStatusService

router = APIRouter(prefix="/api/admin/restaurants", tags=["admin-restaurants"])

STATUS_VALUES = {"active": True, "inactive": False}


class RestaurantStatusRequest(BaseModel):
    status: Optional[str] = None


@router.patch("/{restaurant_id}/status")
def update_restaurant_status(
    restaurant_id: int,
    payload: RestaurantStatusRequest,
    user: AdminUser = Depends(require_platform_admin),
    service: TenantStatusService = Depends(get_tenant_status_service),
):
    target = STATUS_VALUES.get((payload.status or "").strip().lower())
    if target is None:
        raise ValidationError("Invalid status. Must be 'active' or 'inactive'")

    result = service.set_tenant_status(
        restaurant_id,
        target,
        actor_id=user.id,
        actor_role=user.role,
    )
    verb = "activated" if result.is_active else "deactivated"
    return {
        "message": f"Restaurant {verb} successfully",
        "restaurant": {"id": result.tenant_id, "is_active": result.is_active},
        "relatedUpdates": result.related_updates(),
    }
