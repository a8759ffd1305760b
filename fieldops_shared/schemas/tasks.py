"""Task-related Pydantic schemas shared by the service layer and API clients."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import DateField, SortField, SortOrder, TaskStatus


# ---------------------------------------------------------------------------
# Linked entities
# ---------------------------------------------------------------------------

class GeoLocationInput(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class CustomerRead(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    phone: Optional[str] = None


class GeoLocationRead(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    address: Optional[str] = None
    lat: float
    lng: float


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    geo_location: Optional[GeoLocationInput] = None
    scheduled_at: Optional[datetime] = None
    expected_revenue: Optional[Decimal] = Field(default=None, ge=0)
    expected_currency: str = "VND"


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    geo_location: Optional[GeoLocationInput] = None
    scheduled_at: Optional[datetime] = None


class TaskAssigneesUpdate(BaseModel):
    """Request body for PUT /tasks/{taskId}/assignees."""
    assignee_ids: List[str] = Field(default_factory=list)

    @field_validator("assignee_ids")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return sorted({v.strip() for v in value if v and v.strip()})


class TaskStatusUpdate(BaseModel):
    """Request body for PUT /tasks/{taskId}/status."""
    status: TaskStatus


class TaskRead(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    assignee_ids: List[str] = Field(default_factory=list)
    customer_id: Optional[uuid.UUID] = None
    customer: Optional[CustomerRead] = None
    geo_location_id: Optional[uuid.UUID] = None
    geo_location: Optional[GeoLocationRead] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expected_revenue: Optional[Decimal] = None
    expected_currency: str = "VND"
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Search / listing
# ---------------------------------------------------------------------------

class TaskSearchFilters(BaseModel):
    """Structured filter request for task listing and search."""
    search: Optional[str] = None
    status: Optional[List[TaskStatus]] = None
    assigned_user_ids: Optional[List[str]] = None
    assigned_only: bool = False
    customer_id: Optional[uuid.UUID] = None
    date_field: DateField = DateField.CREATED_AT
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    cursor: Optional[str] = None
    take: Optional[int] = Field(default=None, ge=1)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


class TaskPage(BaseModel):
    tasks: List[TaskRead] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_next_page: bool = False


# ---------------------------------------------------------------------------
# Comments / activity
# ---------------------------------------------------------------------------

class TaskCommentCreate(BaseModel):
    comment: str

    @field_validator("comment")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment must not be empty")
        if len(value) > 5000:
            raise ValueError("Comment must be at most 5000 characters")
        return value


class ActivityRead(BaseModel):
    id: uuid.UUID
    topic: str
    action: str
    user_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ActivityPage(BaseModel):
    activities: List[ActivityRead] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_next_page: bool = False
