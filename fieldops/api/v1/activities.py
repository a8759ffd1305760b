"""
Activity log endpoint (read-only; rows are appended by task writes).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from fieldops.api.deps import get_task_service
from fieldops.core.auth import get_current_actor
from fieldops.core.permissions import Actor
from fieldops.services.tasks import TaskService
from fieldops_shared.schemas.tasks import ActivityPage

router = APIRouter()


@router.get("/", response_model=ActivityPage)
async def list_activities_endpoint(
    topic: Optional[str] = None,
    cursor: Optional[str] = None,
    take: int = Query(10, ge=1),
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    """Newest first. Workers must pass `topic=TASK_<id>` for a task assigned to them."""
    return await service.list_activities(actor, topic=topic, cursor=cursor, take=take)
