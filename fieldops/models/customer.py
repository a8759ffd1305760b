"""Customer model (deduplicated by name + phone at task creation)."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Customer(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "customers"

    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, index=True)
