# platform_console/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from platform_console.core.config import PLATFORM_ADMIN_ROLES
from platform_console.core.database import get_db
from platform_console.core.errors import AuthorizationError
from platform_console.core.startup_checks import SchemaCapabilities
from platform_console.models.admin_user import AdminUser
from platform_console.services.admin_session import ADMIN_SESSION_COOKIE, decode_admin_session
from platform_console.services.audit_trail import AuditTrail
from platform_console.services.campaign_moderation import CampaignModeration
from platform_console.services.idempotency import IdempotencyGuard
from platform_console.services.lead_conversion import LeadConversion
from platform_console.services.order_actions import OrderActions
from platform_console.services.task_fanout import TaskFanoutEngine
from platform_console.services.tenant_status import TenantStatusService

logger = logging.getLogger(__name__)


def _normalize_admin_role(role: str | None) -> str:
    return (role or "").strip().lower()


def _log_access_denied(*, reason: str, user: AdminUser, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s endpoint=%s",
        reason,
        getattr(user, "id", None),
        getattr(user, "role", None),
        endpoint,
    )


def _session_payload(request: Request) -> Optional[Dict[str, Any]]:
    # The middleware already decoded the cookie for /api/admin paths.
    payload = getattr(request.state, "admin_session_payload", None)
    if payload:
        return payload
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    if not token:
        return None
    return decode_admin_session(token)


def get_current_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    if not request.cookies.get(ADMIN_SESSION_COOKIE):
        raise AuthorizationError("Admin not authenticated", authenticated=False)

    payload = _session_payload(request)
    if not payload:
        raise AuthorizationError("Session expired", authenticated=False)

    user_id = payload.get("user_id")
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise AuthorizationError("Invalid session", authenticated=False)

    user = (
        db.query(AdminUser)
        .filter(AdminUser.id == user_id, AdminUser.active.is_(True))
        .first()
    )
    if not user:
        raise AuthorizationError("Admin not found", authenticated=False)
    return user


def require_platform_admin(
    request: Request,
    user: AdminUser = Depends(get_current_admin_user),
) -> AdminUser:
    if _normalize_admin_role(user.role) not in PLATFORM_ADMIN_ROLES:
        _log_access_denied(reason="role_denied", user=user, request=request)
        raise AuthorizationError("Platform admin role required")
    return user


def get_schema_capabilities(request: Request) -> SchemaCapabilities:
    return getattr(request.app.state, "schema_capabilities", None) or SchemaCapabilities()


def get_audit_trail(db: Session = Depends(get_db)) -> AuditTrail:
    return AuditTrail(db)


def get_order_actions(db: Session = Depends(get_db)) -> OrderActions:
    audit = AuditTrail(db)
    return OrderActions(db, audit, IdempotencyGuard(db, audit))


def get_campaign_moderation(db: Session = Depends(get_db)) -> CampaignModeration:
    return CampaignModeration(db, AuditTrail(db))


def get_tenant_status_service(
    db: Session = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_schema_capabilities),
) -> TenantStatusService:
    return TenantStatusService(db, AuditTrail(db), capabilities)


def get_task_engine(db: Session = Depends(get_db)) -> TaskFanoutEngine:
    return TaskFanoutEngine(db, AuditTrail(db))


def get_lead_conversion(
    db: Session = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_schema_capabilities),
) -> LeadConversion:
    audit = AuditTrail(db)
    return LeadConversion(db, audit, TaskFanoutEngine(db, audit), capabilities)
