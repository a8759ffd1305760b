"""
API v1 Router
"""

from fastapi import APIRouter
from . import activities, tasks

router = APIRouter()

router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(activities.router, prefix="/activities", tags=["Activities"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/tasks",
            "/tasks/search",
            "/tasks/{taskId}",
            "/tasks/{taskId}/assignees",
            "/tasks/{taskId}/status",
            "/tasks/{taskId}/comments",
            "/activities",
        ],
    }
