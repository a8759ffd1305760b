"""
Activity log: append-only audit rows written in the caller's transaction.
"""

from __future__ import annotations

import base64
import binascii
import json
import uuid
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fieldops.core.errors import ValidationError
from fieldops.models.activity import Activity
from fieldops_shared.schemas.common import ActivityAction
from fieldops_shared.schemas.tasks import ActivityPage, ActivityRead

log = structlog.get_logger()

GENERAL_TOPIC = "GENERAL"
TASK_TOPIC_PREFIX = "TASK_"


def activity_topic(task_id: Optional[int] = None) -> str:
    return f"{TASK_TOPIC_PREFIX}{task_id}" if task_id is not None else GENERAL_TOPIC


def task_id_from_topic(topic: str) -> Optional[int]:
    """`TASK_42` -> 42; anything else -> None."""
    if not topic.startswith(TASK_TOPIC_PREFIX):
        return None
    suffix = topic[len(TASK_TOPIC_PREFIX):]
    return int(suffix) if suffix.isdigit() else None


async def create_activity(
    session: AsyncSession,
    *,
    action: ActivityAction | str,
    user_id: Optional[str],
    task_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
) -> Activity:
    """Stage an Activity row in `session`; it commits or rolls back with the caller."""
    activity = Activity(
        topic=activity_topic(task_id),
        action=action.value if isinstance(action, ActivityAction) else action,
        user_id=user_id,
        payload=payload or {},
    )
    session.add(activity)
    await session.flush()
    log.debug("activity.staged", topic=activity.topic, action=activity.action, user_id=user_id)
    return activity


def _encode_cursor(activity: Activity) -> str:
    raw = json.dumps({"t": activity.created_at.isoformat(), "id": str(activity.id)})
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def _decode_cursor(token: str) -> tuple[datetime, uuid.UUID]:
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(data["t"]), uuid.UUID(data["id"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
        raise ValidationError("Invalid pagination cursor") from exc


async def list_activities(
    session: AsyncSession,
    *,
    topic: Optional[str] = None,
    cursor: Optional[str] = None,
    take: int = 10,
) -> ActivityPage:
    """Newest-first page of activities, ordered by (created_at, id)."""
    stmt = select(Activity)
    if topic:
        stmt = stmt.where(Activity.topic == topic)
    if cursor:
        created_at, activity_id = _decode_cursor(cursor)
        stmt = stmt.where(
            or_(
                Activity.created_at < created_at,
                and_(Activity.created_at == created_at, Activity.id < activity_id),
            )
        )
    stmt = stmt.order_by(Activity.created_at.desc(), Activity.id.desc()).limit(take + 1)

    result = await session.execute(stmt)
    rows = list(result.scalars().all())
    page, has_next_page = rows[:take], len(rows) > take
    return ActivityPage(
        activities=[ActivityRead.model_validate(a, from_attributes=True) for a in page],
        next_cursor=_encode_cursor(page[-1]) if has_next_page else None,
        has_next_page=has_next_page,
    )
