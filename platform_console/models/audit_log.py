from sqlalchemy import Column, DateTime, Index, Integer, String, Text, event

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow


class AuditLogImmutableError(RuntimeError):
    pass


class AuditLog(Base):
    """Append-only ledger of admin mutations. Rows are never updated or deleted."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity_action", "entity_type", "entity_id", "action"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Null for platform-wide actions (bulk cancellation, company rollouts).
    tenant_id = Column(Integer, nullable=True, index=True)
    actor_id = Column(Integer, nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(_mapper, _connection, target):
    raise AuditLogImmutableError(f"audit log entry {target.id} cannot be updated")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(_mapper, _connection, target):
    raise AuditLogImmutableError(f"audit log entry {target.id} cannot be deleted")
