"""
Task query compiler: structured filters -> one composed predicate + keyset page.

Handles:
- Accent-insensitive substring search, plus an id match when the search is a number
- Status / assignee / customer / date-range filters, ANDed together
- Keyset pagination totally ordered by (sort column, id), nulls last
- Opaque cursors that round-trip the last row's sort key

Never raises on search text. Malformed cursors and impossible ranges raise
ValidationError.
"""

from __future__ import annotations

import base64
import binascii
import json
import operator
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy import ColumnElement, and_, or_
from sqlmodel import select

from fieldops.core.errors import ValidationError
from fieldops.models.assignments import TaskAssignee
from fieldops.models.task import Task
from fieldops.services.search_index import SearchableTextIndex, SearchIndex
from fieldops_shared.schemas.common import DateField, SortField, SortOrder
from fieldops_shared.schemas.tasks import TaskSearchFilters

# tasks.id is a 32-bit serial on PostgreSQL
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_INTEGER = re.compile(r"[+-]?[0-9]+")

SORT_COLUMNS = {
    SortField.CREATED_AT: Task.created_at,
    SortField.UPDATED_AT: Task.updated_at,
    SortField.SCHEDULED_AT: Task.scheduled_at,
    SortField.COMPLETED_AT: Task.completed_at,
    SortField.ID: Task.id,
}

NULLABLE_SORT_FIELDS = frozenset({SortField.SCHEDULED_AT, SortField.COMPLETED_AT})

DATE_COLUMNS = {
    DateField.SCHEDULED_AT: Task.scheduled_at,
    DateField.CREATED_AT: Task.created_at,
    DateField.COMPLETED_AT: Task.completed_at,
}


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def parse_task_id(search: str) -> Optional[int]:
    """The search string as a task id, or None if it is not a plain integer in range."""
    candidate = search.strip()
    if not _INTEGER.fullmatch(candidate):
        return None
    value = int(candidate)
    if value < INT32_MIN or value > INT32_MAX:
        return None
    return value


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def build_search_predicate(
    search: Optional[str],
    index: SearchIndex,
) -> Optional[ColumnElement[bool]]:
    """OR-group of text containment and (only for numeric input) id equality.

    Returns None when the search is blank. A search made only of characters
    that normalize away (combining marks, control characters) matches nothing
    rather than everything; the raw string never reaches the database.
    """
    if search is None:
        return None
    collapsed = collapse_whitespace(search)
    if not collapsed:
        return None

    conditions: list[ColumnElement[bool]] = []

    text_match = index.match(collapsed)
    if text_match is not None:
        conditions.append(text_match)

    # Only ever compare against a real integer; a None right-hand side would
    # widen the OR-group on some backends.
    task_id = parse_task_id(collapsed)
    if task_id is not None:
        conditions.append(Task.id == task_id)

    if not conditions:
        return sa.false()
    return or_(*conditions)


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cursor:
    sort_by: SortField
    value: Any  # datetime | int | None
    id: int

    def encode(self) -> str:
        if isinstance(self.value, datetime):
            value: Any = {"t": "dt", "v": self.value.isoformat()}
        elif self.value is None:
            value = None
        else:
            value = {"t": "int", "v": int(self.value)}
        raw = json.dumps({"s": self.sort_by.value, "k": value, "id": self.id}, separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str, sort_by: SortField) -> "Cursor":
        try:
            padded = token + "=" * (-len(token) % 4)
            data = json.loads(base64.urlsafe_b64decode(padded.encode()))
            cursor_sort = SortField(data["s"])
            task_id = data["id"]
            if not isinstance(task_id, int) or isinstance(task_id, bool):
                raise ValueError("cursor id must be an integer")
            key = data["k"]
            if key is None:
                value = None
            elif key["t"] == "dt":
                value = datetime.fromisoformat(key["v"])
            elif key["t"] == "int":
                value = int(key["v"])
            else:
                raise ValueError(f"unknown cursor key type {key['t']!r}")
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise ValidationError("Invalid pagination cursor") from exc

        if cursor_sort != sort_by:
            raise ValidationError("Pagination cursor does not match the requested sort order")
        if value is None and sort_by not in NULLABLE_SORT_FIELDS:
            raise ValidationError("Invalid pagination cursor")
        return cls(sort_by=cursor_sort, value=value, id=task_id)

    @classmethod
    def after(cls, task: Task, sort_by: SortField) -> "Cursor":
        return cls(sort_by=sort_by, value=getattr(task, SORT_COLUMNS[sort_by].key), id=task.id)


def _after_cursor(cursor: Cursor, order: SortOrder) -> ColumnElement[bool]:
    column = SORT_COLUMNS[cursor.sort_by]
    beyond = operator.gt if order == SortOrder.ASC else operator.lt

    id_beyond = beyond(Task.id, cursor.id)
    if cursor.sort_by == SortField.ID:
        return id_beyond

    if cursor.value is None:
        # Already inside the trailing block of NULL sort keys.
        return and_(column.is_(None), id_beyond)

    after = or_(beyond(column, cursor.value), and_(column == cursor.value, id_beyond))
    if cursor.sort_by in NULLABLE_SORT_FIELDS:
        after = or_(after, column.is_(None))
    return after


def _order_by(sort_by: SortField, order: SortOrder) -> list[Any]:
    column = SORT_COLUMNS[sort_by]
    direction = sa.asc if order == SortOrder.ASC else sa.desc
    clauses: list[Any] = []
    if sort_by in NULLABLE_SORT_FIELDS:
        clauses.append(sa.case((column.is_(None), 1), else_=0).asc())
    if sort_by != SortField.ID:
        clauses.append(direction(column))
    clauses.append(direction(Task.id))
    return clauses


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledTaskQuery:
    predicate: ColumnElement[bool]
    order_by: Sequence[Any]
    take: int
    sort_by: SortField
    cursor: Optional[Cursor] = None

    def statement(self):
        # One extra row tells us whether another page exists.
        return select(Task).where(self.predicate).order_by(*self.order_by).limit(self.take + 1)

    def paginate(self, rows: Sequence[Task]) -> tuple[list[Task], Optional[str], bool]:
        page = list(rows[: self.take])
        has_next_page = len(rows) > self.take
        next_cursor = Cursor.after(page[-1], self.sort_by).encode() if has_next_page and page else None
        return page, next_cursor, has_next_page


def compile_task_query(
    filters: TaskSearchFilters,
    *,
    index: Optional[SearchIndex] = None,
    max_page_size: int = 100,
    default_page_size: int = 20,
) -> CompiledTaskQuery:
    """Compile filters into a single predicate, ordering and cursor.

    `take` falls back to `default_page_size` and may not exceed `max_page_size`.
    """
    take = default_page_size if filters.take is None else filters.take
    if take < 1 or take > max_page_size:
        raise ValidationError(f"take must be between 1 and {max_page_size}")

    conditions: list[ColumnElement[bool]] = []

    search = build_search_predicate(filters.search, index or SearchableTextIndex())
    if search is not None:
        conditions.append(search)

    if filters.status is not None:
        if filters.status:
            conditions.append(Task.status.in_([s.value for s in filters.status]))
        else:
            conditions.append(sa.false())

    if filters.assigned_user_ids is not None:
        if filters.assigned_user_ids:
            conditions.append(
                sa.exists().where(
                    TaskAssignee.task_id == Task.id,
                    TaskAssignee.user_id.in_(sorted(set(filters.assigned_user_ids))),
                )
            )
        else:
            conditions.append(sa.false())

    if filters.customer_id is not None:
        conditions.append(Task.customer_id == filters.customer_id)

    if filters.date_from is not None and filters.date_to is not None:
        try:
            inverted = filters.date_from > filters.date_to
        except TypeError as exc:
            raise ValidationError("date_from and date_to must both carry a timezone or neither") from exc
        if inverted:
            raise ValidationError("date_from must not be after date_to")
    date_column = DATE_COLUMNS[filters.date_field]
    if filters.date_from is not None:
        conditions.append(date_column >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(date_column <= filters.date_to)

    cursor = Cursor.decode(filters.cursor, filters.sort_by) if filters.cursor else None
    if cursor is not None:
        conditions.append(_after_cursor(cursor, filters.sort_order))

    predicate = and_(*conditions) if conditions else sa.true()
    return CompiledTaskQuery(
        predicate=predicate,
        order_by=_order_by(filters.sort_by, filters.sort_order),
        take=take,
        sort_by=filters.sort_by,
        cursor=cursor,
    )
