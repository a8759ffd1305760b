"""
Search index over tasks.

The only implementation is a denormalized `tasks.searchable_text` column that
is recomputed in the same transaction as any write to the fields it is built
from. Callers only use `refresh` and `match`, so a dedicated search service can
replace it without touching the lifecycle code.
"""

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import ColumnElement
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.core.text import normalize_for_search
from fieldops.models.customer import Customer
from fieldops.models.geo_location import GeoLocation
from fieldops.models.task import Task


class SearchIndex(Protocol):
    async def refresh(self, session: AsyncSession, task: Task) -> None:
        """Bring the index entry for `task` up to date inside the caller's transaction."""

    def match(self, query: str) -> Optional[ColumnElement[bool]]:
        """Predicate selecting tasks whose indexed text contains `query`, or None."""


def compose_searchable_text(
    task: Task,
    customer: Optional[Customer] = None,
    geo_location: Optional[GeoLocation] = None,
) -> str:
    return normalize_for_search(
        str(task.id) if task.id is not None else None,
        task.title,
        task.description,
        customer.name if customer else None,
        customer.phone if customer else None,
        geo_location.address if geo_location else None,
        geo_location.name if geo_location else None,
    )


class SearchableTextIndex:
    """Substring containment against one normalized text column."""

    async def refresh(self, session: AsyncSession, task: Task) -> None:
        customer = await session.get(Customer, task.customer_id) if task.customer_id else None
        geo_location = (
            await session.get(GeoLocation, task.geo_location_id) if task.geo_location_id else None
        )
        task.searchable_text = compose_searchable_text(task, customer, geo_location)
        session.add(task)

    def match(self, query: str) -> Optional[ColumnElement[bool]]:
        normalized = normalize_for_search(query)
        if not normalized:
            return None
        return Task.searchable_text.contains(normalized, autoescape=True)
