"""
Script to prepare a local database and print a bearer token for manual testing.

    python -m fieldops.scripts.dev_setup --actor-id admin-1 --role admin
"""

import argparse
import asyncio
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import create_async_engine

from fieldops.core.auth import create_jwt
from fieldops.core.config import get_settings
from fieldops.core.database import init_db

settings = get_settings()


async def bootstrap(actor_id: str, roles: Sequence[str], database_url: Optional[str] = None) -> str:
    """Create all tables (idempotent) and return a signed token for `actor_id`."""
    engine = create_async_engine(database_url or settings.database_url)
    try:
        await init_db(engine)
    finally:
        await engine.dispose()
    return create_jwt(actor_id, roles)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and issue a local bearer token.")
    parser.add_argument("--actor-id", required=True, help="Subject of the token")
    parser.add_argument("--role", action="append", default=[], help="Role to grant (repeatable)")
    parser.add_argument("--database-url", default=None, help="Override FIELDOPS_DATABASE_URL")

    args = parser.parse_args()

    token = asyncio.run(bootstrap(args.actor_id, args.role or ["worker"], args.database_url))
    print(f"Authorization: Bearer {token}")
