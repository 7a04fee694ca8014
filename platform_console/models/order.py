from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow

ORDER_STATUSES = ("pending", "accepted", "preparing", "ready", "completed", "cancelled")


class Order(Base):
    """Read-mostly mirror of the order-management table.

    Only ``status`` (and ``updated_at``) is written by this service.
    """

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    customer_name = Column(String(120), nullable=True)
    customer_phone = Column(String(30), nullable=True)
    customer_email = Column(String(255), nullable=True)

    total_cents = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
