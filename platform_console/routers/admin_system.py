from __future__ import annotations

from fastapi import APIRouter, Depends

from platform_console.core.metrics import request_metrics
from platform_console.deps import require_platform_admin
from platform_console.models.admin_user import AdminUser

router = APIRouter(prefix="/api/admin/system", tags=["admin-system"])


@router.get("/metrics")
def system_metrics(_user: AdminUser = Depends(require_platform_admin)):
    return {"endpoints": request_metrics.snapshot(), "conflicts": request_metrics.conflicts()}
