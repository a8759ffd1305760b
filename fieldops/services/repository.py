"""
Task aggregate repository: the persistence boundary for tasks, their
assignees and their linked customer / location rows.

Wraps one AsyncSession; the session's transaction is owned by the caller.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fieldops.models.activity import Activity
from fieldops.models.assignments import TaskAssignee
from fieldops.models.customer import Customer
from fieldops.models.geo_location import GeoLocation
from fieldops.models.task import Task
from fieldops.services import activities
from fieldops.services.query import CompiledTaskQuery
from fieldops_shared.schemas.common import ActivityAction
from fieldops_shared.schemas.tasks import ActivityPage, GeoLocationInput


class TaskRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def get(self, task_id: int) -> Optional[Task]:
        return await self.session.get(Task, task_id)

    async def get_for_update(self, task_id: int) -> Optional[Task]:
        """Re-read the row under a row lock (FOR UPDATE where the backend supports it)."""
        result = await self.session.execute(
            select(Task)
            .where(Task.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(self, task: Task) -> Task:
        self.session.add(task)
        await self.session.flush()
        return task

    async def page(self, compiled: CompiledTaskQuery) -> list[Task]:
        result = await self.session.execute(compiled.statement())
        return list(result.scalars().all())

    async def batch_after(self, last_id: int, limit: int) -> list[Task]:
        result = await self.session.execute(
            select(Task).where(Task.id > last_id).order_by(Task.id).limit(limit)
        )
        return list(result.scalars().all())

    async def set_status(self, task: Task, expected: str, values: dict[str, Any]) -> bool:
        """Write `values` only if the row still has status `expected`.

        Returns False when another transaction moved the task first. The
        in-session `task` is updated in place.
        """
        result = await self.session.execute(
            update(Task)
            .where(Task.id == task.id, Task.status == expected)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    async def related(self, task: Task) -> tuple[Optional[Customer], Optional[GeoLocation]]:
        customer = await self.session.get(Customer, task.customer_id) if task.customer_id else None
        location = (
            await self.session.get(GeoLocation, task.geo_location_id) if task.geo_location_id else None
        )
        return customer, location

    # ------------------------------------------------------------------
    # Assignees
    # ------------------------------------------------------------------

    async def assignee_ids(self, task_id: int) -> list[str]:
        result = await self.session.execute(
            select(TaskAssignee.user_id)
            .where(TaskAssignee.task_id == task_id)
            .order_by(TaskAssignee.user_id)
        )
        return [row[0] for row in result.all()]

    async def assignee_map(self, task_ids: Sequence[int]) -> dict[int, list[str]]:
        mapping: dict[int, list[str]] = {tid: [] for tid in task_ids}
        if not task_ids:
            return mapping
        result = await self.session.execute(
            select(TaskAssignee.task_id, TaskAssignee.user_id)
            .where(TaskAssignee.task_id.in_(list(task_ids)))
            .order_by(TaskAssignee.task_id, TaskAssignee.user_id)
        )
        for task_id, user_id in result.all():
            mapping[task_id].append(user_id)
        return mapping

    async def replace_assignees(self, task_id: int, user_ids: Iterable[str]) -> list[str]:
        new_ids = sorted(set(user_ids))
        await self.session.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task_id))
        for user_id in new_ids:
            self.session.add(TaskAssignee(task_id=task_id, user_id=user_id))
        await self.session.flush()
        return new_ids

    # ------------------------------------------------------------------
    # Customers / locations
    # ------------------------------------------------------------------

    async def find_or_create_customer(
        self, name: Optional[str], phone: Optional[str]
    ) -> Optional[Customer]:
        """Reuse a customer matching every supplied field; create one otherwise.

        Returns None when neither name nor phone is given.
        """
        if not name and not phone:
            return None

        stmt = select(Customer)
        if name:
            stmt = stmt.where(Customer.name == name)
        if phone:
            stmt = stmt.where(Customer.phone == phone)
        result = await self.session.execute(stmt.order_by(Customer.created_at).limit(1))
        customer = result.scalar_one_or_none()
        if customer:
            return customer

        customer = Customer(name=name or None, phone=phone or None)
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def create_geo_location(self, data: Optional[GeoLocationInput]) -> Optional[GeoLocation]:
        """Only a location with both coordinates is stored."""
        if data is None or data.lat is None or data.lng is None:
            return None
        location = GeoLocation(name=data.name, address=data.address, lat=data.lat, lng=data.lng)
        self.session.add(location)
        await self.session.flush()
        return location

    async def customers_by_id(self, ids: Iterable) -> dict:
        ids = {i for i in ids if i is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(Customer).where(Customer.id.in_(ids)))
        return {c.id: c for c in result.scalars().all()}

    async def locations_by_id(self, ids: Iterable) -> dict:
        ids = {i for i in ids if i is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(GeoLocation).where(GeoLocation.id.in_(ids)))
        return {g.id: g for g in result.scalars().all()}

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    async def append_activity(
        self,
        action: ActivityAction | str,
        user_id: Optional[str],
        task_id: Optional[int] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Activity:
        return await activities.create_activity(
            self.session, action=action, user_id=user_id, task_id=task_id, payload=payload
        )

    async def activity_page(
        self, topic: Optional[str], cursor: Optional[str], take: int
    ) -> ActivityPage:
        return await activities.list_activities(self.session, topic=topic, cursor=cursor, take=take)
