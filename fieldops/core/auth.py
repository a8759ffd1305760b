"""
Identity resolution for the dispatch API.

Credentials are issued by the external identity provider; this module only
verifies a signed bearer token and turns its claims into an Actor:

- `sub`   -> Actor.id
- `roles` -> Actor.roles (claim name configurable, list of strings)

Nothing downstream depends on the token format, only on Actor.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader

from fieldops.core.config import get_settings
from fieldops.core.permissions import Actor

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    actor_id: str,
    roles: Iterable[str],
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed token. Used by local tooling and tests, never by request handlers."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=60))
    payload = {
        "sub": actor_id,
        settings.roles_claim: sorted(set(roles)),
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def actor_from_claims(claims: dict) -> Actor:
    """Build an Actor from verified claims. Raises ValueError on a malformed payload."""
    subject = claims.get("sub")
    if not subject or not isinstance(subject, str):
        raise ValueError("Token has no subject")
    roles = claims.get(settings.roles_claim) or []
    if isinstance(roles, str):
        roles = [roles]
    return Actor(id=subject, roles=frozenset(str(r) for r in roles))


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

async def get_current_actor(
    authorization: Optional[str] = Depends(api_key_header),
) -> Actor:
    """Main authentication dependency: `Authorization: Bearer <jwt>`."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization[7:].strip()
    try:
        actor = actor_from_claims(decode_jwt(token))
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    structlog.contextvars.bind_contextvars(actor_id=actor.id)
    return actor
