"""
Dependency injection for route handlers.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.core.config import Settings, get_settings
from fieldops.core.database import get_session_factory
from fieldops.services.tasks import TaskService


def get_task_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> TaskService:
    """A TaskService bound to the app's session factory and settings."""
    return TaskService(session_factory, settings=settings)
