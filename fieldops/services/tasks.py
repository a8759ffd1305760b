"""
Task service layer: the lifecycle engine behind the task endpoints.

Handles:
- Task creation with customer de-duplication and optional location
- Assignee management and admin edits (re-normalizing search text in-line)
- Status transitions gated by the permission evaluator, with timestamp side effects
- Comments and the activity log
- Listing / search through the query compiler, enriched for API responses

Each public operation opens one session and one transaction. Permission is
evaluated inside that transaction against a freshly locked row, and the
mutation and its Activity row commit or roll back together.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.core.config import Settings, get_settings
from fieldops.core.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InternalError,
    InvalidTransitionError,
    NotAssignedError,
    NotFoundError,
    ValidationError,
)
from fieldops.core.permissions import (
    Actor,
    DenialReason,
    TaskSnapshot,
    can_create,
    can_edit,
    can_list_all,
    can_manage_assignees,
    can_view,
    evaluate_transition,
)
from fieldops.models.task import Task
from fieldops.services.activities import task_id_from_topic
from fieldops.services.query import compile_task_query
from fieldops.services.repository import TaskRepository
from fieldops.services.search_index import SearchableTextIndex, SearchIndex
from fieldops_shared.schemas.common import ActivityAction, TaskStatus
from fieldops_shared.schemas.tasks import (
    ActivityPage,
    ActivityRead,
    CustomerRead,
    GeoLocationRead,
    TaskCreate,
    TaskPage,
    TaskRead,
    TaskSearchFilters,
    TaskUpdate,
)

log = structlog.get_logger()

MAX_COMMENT_LENGTH = 5000

# Status writes retried against the fresh row after losing a race.
MAX_STATUS_ATTEMPTS = 3

# Timestamp stamped on entry into a status, only if not already set.
TRANSITION_TIMESTAMPS = {
    TaskStatus.IN_PROGRESS: "started_at",
    TaskStatus.COMPLETED: "completed_at",
}

# Plain columns an admin edit may overwrite directly.
EDITABLE_FIELDS = ("title", "description", "scheduled_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


async def enrich_tasks(repo: TaskRepository, tasks: Sequence[Task]) -> list[TaskRead]:
    """Convert Task rows to TaskRead with assignees, customer and location (batched)."""
    task_ids = [t.id for t in tasks]
    assignees = await repo.assignee_map(task_ids)
    customers = await repo.customers_by_id(t.customer_id for t in tasks)
    locations = await repo.locations_by_id(t.geo_location_id for t in tasks)

    result = []
    for task in tasks:
        customer = customers.get(task.customer_id)
        location = locations.get(task.geo_location_id)
        result.append(
            TaskRead(
                id=task.id,
                title=task.title,
                description=task.description,
                status=task.status,
                assignee_ids=assignees.get(task.id, []),
                customer_id=task.customer_id,
                customer=(
                    CustomerRead(id=customer.id, name=customer.name, phone=customer.phone)
                    if customer
                    else None
                ),
                geo_location_id=task.geo_location_id,
                geo_location=(
                    GeoLocationRead(
                        id=location.id,
                        name=location.name,
                        address=location.address,
                        lat=location.lat,
                        lng=location.lng,
                    )
                    if location
                    else None
                ),
                scheduled_at=task.scheduled_at,
                started_at=task.started_at,
                completed_at=task.completed_at,
                expected_revenue=task.expected_revenue,
                expected_currency=task.expected_currency,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
        )
    return result


async def enrich_task(repo: TaskRepository, task: Task) -> TaskRead:
    return (await enrich_tasks(repo, [task]))[0]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TaskService:
    """Task lifecycle operations over an injected session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        index: Optional[SearchIndex] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.index = index or SearchableTextIndex()

    @asynccontextmanager
    async def _unit(self, operation: str, **context) -> AsyncIterator[TaskRepository]:
        """One session, one transaction.

        Domain errors propagate unchanged; anything else rolls back and
        surfaces as InternalError.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield TaskRepository(session)
            except DomainError:
                raise
            except Exception as exc:
                log.error("task.operation_failed", operation=operation, error=str(exc), exc_info=True, **context)
                raise InternalError("Internal server error") from exc

    async def _locked_snapshot(self, repo: TaskRepository, task_id: int) -> tuple[Task, TaskSnapshot]:
        task = await repo.get_for_update(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task, TaskSnapshot.of(task.id, task.status, await repo.assignee_ids(task.id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_task_by_id(self, task_id: int) -> Optional[TaskRead]:
        async with self._unit("get_task_by_id", task_id=task_id) as repo:
            task = await repo.get(task_id)
            return await enrich_task(repo, task) if task else None

    async def get_task_for_actor(self, task_id: int, actor: Actor) -> TaskRead:
        async with self._unit("get_task_for_actor", task_id=task_id) as repo:
            task = await repo.get(task_id)
            if task is None:
                raise NotFoundError("Task not found")
            snapshot = TaskSnapshot.of(task.id, task.status, await repo.assignee_ids(task.id))
            if not can_view(actor, snapshot):
                log.warning("task.view_denied", task_id=task_id, actor_id=actor.id)
                raise NotAssignedError("You are not assigned to this task")
            return await enrich_task(repo, task)

    def _scope_filters(self, filters: TaskSearchFilters, actor: Actor) -> TaskSearchFilters:
        if filters.assigned_only:
            return filters.model_copy(update={"assigned_user_ids": [actor.id]})
        if can_list_all(actor):
            return filters
        if filters.assigned_user_ids is not None and set(filters.assigned_user_ids) == {actor.id}:
            return filters
        log.warning("task.list_denied", actor_id=actor.id)
        raise ForbiddenError("Workers may only list tasks assigned to themselves")

    async def list_tasks(self, filters: TaskSearchFilters, actor: Actor) -> TaskPage:
        filters = self._scope_filters(filters, actor)
        compiled = compile_task_query(
            filters,
            index=self.index,
            max_page_size=self.settings.max_page_size,
            default_page_size=self.settings.default_page_size,
        )
        log.debug("task.list", search=filters.search, take=compiled.take, sort_by=compiled.sort_by.value)

        async with self._unit("list_tasks") as repo:
            rows = await repo.page(compiled)
            page, next_cursor, has_next_page = compiled.paginate(rows)
            tasks = await enrich_tasks(repo, page)

        return TaskPage(tasks=tasks, next_cursor=next_cursor, has_next_page=has_next_page)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_task(self, data: TaskCreate, actor: Actor) -> TaskRead:
        if not can_create(actor):
            log.warning("task.create_denied", actor_id=actor.id)
            raise ForbiddenError("Only admins can create tasks")

        async with self._unit("create_task") as repo:
            customer = await repo.find_or_create_customer(data.customer_name, data.customer_phone)
            location = await repo.create_geo_location(data.geo_location)
            task = await repo.add(
                Task(
                    title=data.title,
                    description=data.description,
                    status=TaskStatus.PREPARING.value,
                    customer_id=customer.id if customer else None,
                    geo_location_id=location.id if location else None,
                    scheduled_at=data.scheduled_at,
                    expected_revenue=data.expected_revenue,
                    expected_currency=data.expected_currency,
                )
            )
            # The id is part of the indexed text, so refresh after the insert.
            await self.index.refresh(repo.session, task)
            await repo.append_activity(
                ActivityAction.TASK_CREATED, actor.id, task_id=task.id, payload={"title": task.title}
            )
            await repo.session.flush()
            result = await enrich_task(repo, task)

        log.info("task.created", task_id=result.id, actor_id=actor.id)
        return result

    async def update_task(self, task_id: int, data: TaskUpdate, actor: Actor) -> TaskRead:
        if not can_edit(actor):
            log.warning("task.update_denied", task_id=task_id, actor_id=actor.id)
            raise ForbiddenError("Only admins can edit tasks")

        changes = data.model_dump(exclude_unset=True)
        if "title" in changes and changes["title"] is None:
            raise ValidationError("title cannot be cleared")

        async with self._unit("update_task", task_id=task_id) as repo:
            task, _ = await self._locked_snapshot(repo, task_id)
            changed: list[str] = []

            for field in EDITABLE_FIELDS:
                if field in changes and getattr(task, field) != changes[field]:
                    setattr(task, field, changes[field])
                    changed.append(field)

            if "customer_name" in changes or "customer_phone" in changes:
                current, _ = await repo.related(task)
                name = changes.get("customer_name", current.name if current else None)
                phone = changes.get("customer_phone", current.phone if current else None)
                # Customers are shared between tasks, so point at another row
                # instead of editing this one.
                customer = await repo.find_or_create_customer(name, phone)
                customer_id = customer.id if customer else None
                if customer_id != task.customer_id:
                    task.customer_id = customer_id
                    changed.append("customer")

            if "geo_location" in changes:
                if data.geo_location is None:
                    location_id = None
                else:
                    location = await repo.create_geo_location(data.geo_location)
                    if location is None:
                        raise ValidationError("geo_location requires both lat and lng")
                    location_id = location.id
                if location_id != task.geo_location_id:
                    task.geo_location_id = location_id
                    changed.append("geo_location")

            if changed:
                task.updated_at = _utcnow()
                await self.index.refresh(repo.session, task)
                await repo.append_activity(
                    ActivityAction.TASK_UPDATED, actor.id, task_id=task.id, payload={"fields": changed}
                )
                await repo.session.flush()
            result = await enrich_task(repo, task)

        log.info("task.updated", task_id=task_id, actor_id=actor.id, fields=changed)
        return result

    async def update_assignees(
        self, task_id: int, assignee_ids: Sequence[str], actor: Actor
    ) -> TaskRead:
        if not can_manage_assignees(actor):
            log.warning("task.assignees_denied", task_id=task_id, actor_id=actor.id)
            raise ForbiddenError("Only admins can manage assignees")

        async with self._unit("update_assignees", task_id=task_id) as repo:
            task, snapshot = await self._locked_snapshot(repo, task_id)
            previous = sorted(snapshot.assignee_ids)
            new_ids = await repo.replace_assignees(task.id, assignee_ids)
            task.updated_at = _utcnow()
            repo.session.add(task)
            await repo.append_activity(
                ActivityAction.TASK_ASSIGNEES_UPDATED,
                actor.id,
                task_id=task.id,
                payload={"previousAssigneeIds": previous, "newAssigneeIds": new_ids},
            )
            await repo.session.flush()
            result = await enrich_task(repo, task)

        log.info("task.assignees_updated", task_id=task_id, actor_id=actor.id, assignee_ids=new_ids)
        return result

    def _check_transition(self, actor: Actor, snapshot: TaskSnapshot, target: TaskStatus) -> None:
        decision = evaluate_transition(
            actor,
            snapshot,
            target,
            require_assignee_to_start=self.settings.require_assignee_to_start,
        )
        if decision:
            return
        log.warning(
            "task.transition_denied",
            task_id=snapshot.id,
            actor_id=actor.id,
            current=snapshot.status.value,
            target=target.value,
            reason=decision.reason.value,
        )
        if decision.reason == DenialReason.NOT_ASSIGNED:
            raise NotAssignedError("You are not assigned to this task")
        raise InvalidTransitionError(
            f"Cannot move task from {snapshot.status.value} to {target.value}"
        )

    async def transition_status(
        self, task_id: int, target_status: TaskStatus | str, actor: Actor
    ) -> TaskRead:
        """Move a task along one edge of the lifecycle graph.

        Raises NotFoundError, NotAssignedError or InvalidTransitionError
        before anything is written. The status write only succeeds if the row
        still holds the status the decision was made against; otherwise the
        row is re-read and the decision is made again against what the other
        writer left behind.
        """
        target = TaskStatus(target_status)
        log.debug("task.transition_requested", task_id=task_id, target=target.value, actor_id=actor.id)

        async with self._unit("transition_status", task_id=task_id, target=target.value) as repo:
            task, snapshot = await self._locked_snapshot(repo, task_id)
            for attempt in range(1, MAX_STATUS_ATTEMPTS + 1):
                self._check_transition(actor, snapshot, target)

                now = _utcnow()
                values = {"status": target.value, "updated_at": now}
                stamp = TRANSITION_TIMESTAMPS.get(target)
                if stamp and getattr(task, stamp) is None:
                    values[stamp] = now

                if await repo.set_status(task, snapshot.status.value, values):
                    break
                log.info(
                    "task.transition_race_lost",
                    task_id=task_id,
                    expected=snapshot.status.value,
                    attempt=attempt,
                )
                task, snapshot = await self._locked_snapshot(repo, task_id)
            else:
                raise ConflictError("Task status changed concurrently, reload and retry")

            await repo.append_activity(
                ActivityAction.TASK_STATUS_UPDATED,
                actor.id,
                task_id=task.id,
                payload={"previousStatus": snapshot.status.value, "newStatus": target.value},
            )
            result = await enrich_task(repo, task)

        log.info(
            "task.status_updated",
            task_id=task_id,
            actor_id=actor.id,
            previous=snapshot.status.value,
            new=target.value,
        )
        return result

    async def reindex(self, batch_size: int = 200) -> int:
        """Recompute the search text of every task, one transaction per batch.

        For backfills after the normalization rules change. Returns the number
        of tasks whose stored text differed.
        """
        if batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        changed = 0
        last_id = 0
        while True:
            async with self._unit("reindex", after_id=last_id) as repo:
                batch = await repo.batch_after(last_id, batch_size)
                for task in batch:
                    before = task.searchable_text
                    await self.index.refresh(repo.session, task)
                    if task.searchable_text != before:
                        changed += 1
            if len(batch) < batch_size:
                break
            last_id = batch[-1].id
            log.debug("task.reindex_progress", last_id=last_id, changed=changed)

        log.info("task.reindexed", changed=changed)
        return changed

    # ------------------------------------------------------------------
    # Comments / activity
    # ------------------------------------------------------------------

    async def add_comment(self, task_id: int, comment: str, actor: Actor) -> ActivityRead:
        text = comment.strip()
        if not text or len(text) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment must be between 1 and {MAX_COMMENT_LENGTH} characters")

        async with self._unit("add_comment", task_id=task_id) as repo:
            task = await repo.get(task_id)
            if task is None:
                raise NotFoundError("Task not found")
            snapshot = TaskSnapshot.of(task.id, task.status, await repo.assignee_ids(task.id))
            if not can_view(actor, snapshot):
                log.warning("task.comment_denied", task_id=task_id, actor_id=actor.id)
                raise NotAssignedError("You are not assigned to this task")
            activity = await repo.append_activity(
                ActivityAction.TASK_COMMENTED, actor.id, task_id=task.id, payload={"comment": text}
            )
            result = ActivityRead.model_validate(activity, from_attributes=True)

        log.info("task.commented", task_id=task_id, actor_id=actor.id)
        return result

    async def list_activities(
        self,
        actor: Actor,
        *,
        topic: Optional[str] = None,
        cursor: Optional[str] = None,
        take: int = 10,
    ) -> ActivityPage:
        """Newest-first activity page. Workers must name the topic of a task they can view."""
        if take < 1 or take > self.settings.max_page_size:
            raise ValidationError(f"take must be between 1 and {self.settings.max_page_size}")

        async with self._unit("list_activities", topic=topic) as repo:
            if not actor.is_admin:
                task_id = task_id_from_topic(topic) if topic else None
                if task_id is None:
                    raise ForbiddenError("Workers may only read the activity of their own tasks")
                task = await repo.get(task_id)
                if task is None:
                    raise NotFoundError("Task not found")
                snapshot = TaskSnapshot.of(task.id, task.status, await repo.assignee_ids(task.id))
                if not can_view(actor, snapshot):
                    raise NotAssignedError("You are not assigned to this task")
            return await repo.activity_page(topic, cursor, take)
