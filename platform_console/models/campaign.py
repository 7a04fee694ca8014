from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow

CAMPAIGN_STATUSES = (
    "draft",
    "pending_owner_approval",
    "approved",
    "scheduled",
    "rejected",
    "sending",
    "sent",
    "failed",
)


class Campaign(Base):
    __tablename__ = "marketing_campaigns"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    channel = Column(String(20), nullable=False, default="sms")  # sms | email
    message = Column(Text, nullable=False, default="")
    status = Column(String(32), nullable=False, default="draft", index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
