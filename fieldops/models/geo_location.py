"""GeoLocation model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class GeoLocation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "geo_locations"

    name: Optional[str] = None
    address: Optional[str] = None
    lat: float = Field(nullable=False)
    lng: float = Field(nullable=False)
