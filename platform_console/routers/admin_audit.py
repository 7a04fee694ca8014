from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from platform_console.core.config import AUDIT_QUERY_MAX_LIMIT
from platform_console.core.errors import ValidationError
from platform_console.deps import get_audit_trail, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.services.audit_trail import AuditQuery, AuditTrail

router = APIRouter(prefix="/api/admin/audit", tags=["admin-audit"])


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


@router.get("/logs")
def list_audit_logs(
    tenant_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    limit: int = Query(100, ge=1, le=AUDIT_QUERY_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    _user: AdminUser = Depends(require_platform_admin),
    audit: AuditTrail = Depends(get_audit_trail),
):
    page = audit.query(
        AuditQuery(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            created_from=_parse_datetime(from_date, "from"),
            created_to=_parse_datetime(to_date, "to"),
            limit=limit,
            offset=offset,
        )
    )
    return {
        "logs": page.entries,
        "pagination": {
            "total": page.total,
            "limit": page.limit,
            "offset": page.offset,
            "hasMore": page.has_more,
        },
    }


@router.get("/actions")
def list_audit_actions(
    _user: AdminUser = Depends(require_platform_admin),
    audit: AuditTrail = Depends(get_audit_trail),
):
    return {"actions": audit.distinct_actions()}
