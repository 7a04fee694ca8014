from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow

TASK_SCOPES = ("restaurant", "company")
TASK_STATUSES = ("pending", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")
TASK_TYPES = ("one_time", "recurring", "onboarding")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    scope = Column(String(20), nullable=False, default="restaurant")
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    # Shared by every sibling created from one company-scope rollout.
    parent_task_group_id = Column(String(36), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="medium")
    type = Column(String(20), nullable=False, default="one_time")
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
