from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    scope: str = "restaurant"
    title: Optional[str] = None
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    type: str = "one_time"
    restaurant_id: Optional[int] = Field(None, ge=1)
    company_id: Optional[int] = Field(None, ge=1)
    assigned_to: Optional[int] = Field(None, ge=1)
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    type: Optional[str] = None
    assigned_to: Optional[int] = Field(None, ge=1)
    due_date: Optional[datetime] = None
    apply_to_group: Optional[bool] = None


class DemoBookingConvert(BaseModel):
    restaurant_id: Optional[int] = Field(None, ge=1)
    assigned_to: Optional[int] = Field(None, ge=1)
    due_date: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
