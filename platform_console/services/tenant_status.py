from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from platform_console.core.database import atomic
from platform_console.core.errors import ConflictError, NotFoundError
from platform_console.core.startup_checks import SchemaCapabilities
from platform_console.models.campaign import Campaign
from platform_console.models.tenant import Tenant
from platform_console.models.user import User
from platform_console.schemas.audit_payloads import RestaurantStatusChanged
from platform_console.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)
TENANTS_PREFIX = "[TENANTS]"


@dataclass
class TenantStatusResult:
    tenant_id: int
    is_active: bool
    users_updated: int
    campaigns_updated: int
    orders_retained: bool = True

    @property
    def dependents_updated(self) -> int:
        return self.campaigns_updated

    def related_updates(self) -> Dict[str, Any]:
        return {
            "usersUpdated": self.users_updated,
            "campaignsUpdated": self.campaigns_updated,
            "dependentsUpdated": self.dependents_updated,
            "ordersRetained": self.orders_retained,
        }


class TenantStatusService:
    """Toggles a restaurant's active flag and cascades it to its users and campaigns."""

    def __init__(self, db: Session, audit: AuditTrail, capabilities: SchemaCapabilities) -> None:
        self.db = db
        self.audit = audit
        self.capabilities = capabilities

    def locked_tenants_query(self, tenant_id: int) -> Query:
        # Target plus every active tenant, locked in id order by one statement.
        return (
            self.db.query(Tenant)
            .filter(or_(Tenant.is_active.is_(True), Tenant.id == tenant_id))
            .order_by(Tenant.id.asc())
            .with_for_update()
        )

    def set_tenant_status(
        self,
        tenant_id: int,
        target_active: bool,
        *,
        actor_id: Optional[int] = None,
        actor_role: Optional[str] = None,
    ) -> TenantStatusResult:
        with atomic(self.db):
            locked = self.locked_tenants_query(tenant_id).all()
            tenant = next((row for row in locked if row.id == tenant_id), None)
            if not tenant:
                raise NotFoundError("Restaurant not found")
            other_active = sum(1 for row in locked if row.id != tenant.id and row.is_active)

            if not target_active and tenant.is_active and other_active < 1:
                logger.warning("%s refused to deactivate last active tenant_id=%s", TENANTS_PREFIX, tenant.id)
                raise ConflictError(
                    "Cannot deactivate the last active restaurant",
                    details={"reason": "At least one active restaurant must remain on the platform"},
                )

            tenant.is_active = target_active
            users_updated = (
                self.db.query(User)
                .filter(User.tenant_id == tenant.id)
                .update({User.is_active: target_active}, synchronize_session=False)
            )
            campaigns_updated = 0
            if self.capabilities.campaigns_support_active_flag:
                campaigns_updated = (
                    self.db.query(Campaign)
                    .filter(Campaign.tenant_id == tenant.id)
                    .update({Campaign.is_active: target_active}, synchronize_session=False)
                )

            action = "restaurant.activated" if target_active else "restaurant.deactivated"
            self.audit.append(
                tenant_id=tenant.id,
                actor_id=actor_id,
                action=action,
                entity_type="restaurant",
                entity_id=tenant.id,
                details=RestaurantStatusChanged(
                    actor_id=actor_id,
                    actor_role=actor_role,
                    restaurant_id=tenant.id,
                    restaurant_name=tenant.name,
                    users_updated=int(users_updated or 0),
                    campaigns_updated=int(campaigns_updated or 0),
                ),
            )
            result = TenantStatusResult(
                tenant_id=tenant.id,
                is_active=target_active,
                users_updated=int(users_updated or 0),
                campaigns_updated=int(campaigns_updated or 0),
            )

        logger.info(
            "%s %s tenant_id=%s users=%s campaigns=%s",
            TENANTS_PREFIX,
            action,
            tenant_id,
            result.users_updated,
            result.campaigns_updated,
        )
        return result
