from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow


class IdempotencyRecord(Base):
    """Marker inserted before a guarded side effect runs.

    The unique constraint is what makes two concurrent requests carrying the
    same key collide instead of both executing.
    """

    __tablename__ = "admin_idempotency_keys"
    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            "action",
            "idempotency_key",
            name="uq_admin_idempotency_entity_action_key",
        ),
    )

    id = Column(Integer, primary_key=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(64), nullable=False)
    action = Column(String(100), nullable=False)
    idempotency_key = Column(String(255), nullable=False)
    audit_log_id = Column(Integer, ForeignKey("audit_logs.id"), nullable=True)
    # Null while the guarded operation is still running.
    result_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
