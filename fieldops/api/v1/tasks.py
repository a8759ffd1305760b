"""
Task endpoints: listing/search, CRUD, assignees, status transitions, comments.

Lifecycle: PREPARING → READY ⇄ ON_HOLD, READY → IN_PROGRESS → COMPLETED
- Admins drive every edge; assigned workers only READY → IN_PROGRESS → COMPLETED.
- COMPLETED is terminal.
- Every write appends an Activity row in the same transaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from fieldops.api.deps import get_task_service
from fieldops.core.auth import get_current_actor
from fieldops.core.permissions import Actor
from fieldops.services.tasks import TaskService
from fieldops_shared.schemas.common import DateField, SortField, SortOrder, TaskStatus
from fieldops_shared.schemas.tasks import (
    ActivityRead,
    TaskAssigneesUpdate,
    TaskCommentCreate,
    TaskCreate,
    TaskPage,
    TaskRead,
    TaskSearchFilters,
    TaskStatusUpdate,
    TaskUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Listing / search
# ---------------------------------------------------------------------------


def task_filters(
    search: Optional[str] = None,
    status: Optional[List[TaskStatus]] = Query(None),
    assigned_user_ids: Optional[List[str]] = Query(None),
    assigned_only: bool = False,
    customer_id: Optional[uuid.UUID] = None,
    date_field: DateField = DateField.CREATED_AT,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    cursor: Optional[str] = None,
    take: Optional[int] = Query(None, ge=1),
    sort_by: SortField = SortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> TaskSearchFilters:
    """Query-string filters shared by the list and search endpoints."""
    return TaskSearchFilters(
        search=search,
        status=status,
        assigned_user_ids=assigned_user_ids,
        assigned_only=assigned_only,
        customer_id=customer_id,
        date_field=date_field,
        date_from=date_from,
        date_to=date_to,
        cursor=cursor,
        take=take,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/", response_model=TaskPage)
async def list_tasks_endpoint(
    filters: TaskSearchFilters = Depends(task_filters),
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """List tasks. Workers must scope to themselves (assigned_only or assigned_user_ids)."""
    return await service.list_tasks(filters, actor)


@router.get("/search", response_model=TaskPage)
async def search_tasks_endpoint(
    filters: TaskSearchFilters = Depends(task_filters),
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Accent-insensitive search over title, description, customer and location, or by id."""
    return await service.list_tasks(filters, actor)


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Create a new task in PREPARING."""
    return await service.create_task(task_in, actor)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: int,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    return await service.get_task_for_actor(task_id, actor)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: int,
    task_in: TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Edit task details; customer and location changes re-index the task."""
    return await service.update_task(task_id, task_in, actor)


# ---------------------------------------------------------------------------
# Assignees / status
# ---------------------------------------------------------------------------


@router.put("/{task_id}/assignees", response_model=TaskRead)
async def update_assignees_endpoint(
    task_id: int,
    body: TaskAssigneesUpdate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Replace the assignee set (admin only)."""
    return await service.update_assignees(task_id, body.assignee_ids, actor)


@router.put("/{task_id}/status", response_model=TaskRead)
async def update_status_endpoint(
    task_id: int,
    body: TaskStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Move the task to a new status. 403 with NOT_ASSIGNED or INVALID_TRANSITION on denial."""
    return await service.transition_status(task_id, body.status, actor)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.post("/{task_id}/comments", response_model=ActivityRead, status_code=201)
async def add_comment_endpoint(
    task_id: int,
    body: TaskCommentCreate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    return await service.add_comment(task_id, body.comment, actor)
