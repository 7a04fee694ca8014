from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text

from platform_console.core.database import Base
from platform_console.core.timeutils import utcnow

DEMO_BOOKING_STATUSES = ("scheduled", "completed", "cancelled", "no_show", "converted")
CONVERSION_STAGES = ("new", "qualified", "proposal", "won", "lost")


class DemoBooking(Base):
    """Sales lead captured by the public demo booking form."""

    __tablename__ = "demo_bookings"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    restaurant_name = Column(String(255), nullable=True)
    booking_date = Column(Date, nullable=True)
    booking_time = Column(String(10), nullable=True)
    timezone = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="scheduled")
    conversion_stage = Column(String(20), nullable=True, default="new")
    converted_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
