from sqlalchemy import Boolean, Column, DateTime, Integer, String

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow


class AdminUser(Base):
    """Platform operator; credentials live with the external auth service."""

    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="platform_admin")
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
