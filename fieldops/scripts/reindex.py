"""
Script to recompute tasks.searchable_text for every task.

    python -m fieldops.scripts.reindex --batch-size 500
"""

import argparse
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine

from fieldops.core.config import get_settings
from fieldops.core.database import make_session_factory
from fieldops.core.logging_config import configure_logging
from fieldops.services.tasks import TaskService

settings = get_settings()


async def reindex(batch_size: int, database_url: Optional[str] = None) -> int:
    engine = create_async_engine(database_url or settings.database_url)
    try:
        service = TaskService(make_session_factory(engine), settings=settings)
        return await service.reindex(batch_size=batch_size)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rebuild the task search text.")
    parser.add_argument("--batch-size", type=int, default=200, help="Tasks per transaction")
    parser.add_argument("--database-url", default=None, help="Override FIELDOPS_DATABASE_URL")

    args = parser.parse_args()
    if args.batch_size < 1:
        parser.error("--batch-size must be at least 1")

    configure_logging(settings)
    changed = asyncio.run(reindex(args.batch_size, args.database_url))
    print(f"Reindexed {changed} task(s).")
