"""Task model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Task(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        # Trigram GIN on PostgreSQL, a plain index elsewhere.
        sa.Index(
            "ix_tasks_searchable_text_trgm",
            "searchable_text",
            postgresql_using="gin",
            postgresql_ops={"searchable_text": "gin_trgm_ops"},
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="PREPARING", index=True)  # PREPARING | READY | IN_PROGRESS | ON_HOLD | COMPLETED
    customer_id: Optional[uuid.UUID] = Field(default=None, foreign_key="customers.id", index=True)
    geo_location_id: Optional[uuid.UUID] = Field(default=None, foreign_key="geo_locations.id")
    scheduled_at: Optional[datetime] = Field(default=None, index=True, sa_type=sa.DateTime(timezone=True))
    started_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    completed_at: Optional[datetime] = Field(default=None, index=True, sa_type=sa.DateTime(timezone=True))
    expected_revenue: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=2)
    expected_currency: str = Field(nullable=False, default="VND")
    # Derived from title, description, customer and location; see services/search_index.py
    searchable_text: str = Field(nullable=False, default="")
