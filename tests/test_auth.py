"""
Tests for identity resolution and response middleware.

Covers:
- JWT creation, decoding, expiry, tampering
- Claims -> Actor mapping
- get_current_actor dependency (401 paths)
- Security headers middleware
"""

from __future__ import annotations

from datetime import timedelta

import jwt as pyjwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from fieldops.core.auth import actor_from_claims, create_jwt, decode_jwt, get_current_actor
from fieldops.core.middleware import (
    DOCS_CONTENT_SECURITY_POLICY,
    SECURITY_HEADERS,
    SecurityHeadersMiddleware,
)
from fieldops.core.permissions import Actor


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_create_and_decode(self):
        token = create_jwt("w1", ["worker", "worker"])
        payload = decode_jwt(token)
        assert payload["sub"] == "w1"
        assert payload["roles"] == ["worker"]
        assert "jti" in payload

    def test_expired_jwt_raises(self):
        token = create_jwt("w1", ["worker"], expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_jwt_raises(self):
        token = create_jwt("admin-1", ["admin"])
        tampered = token[:-5] + ("AAAAA" if not token.endswith("AAAAA") else "BBBBB")
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(tampered)


class TestActorFromClaims:
    def test_roles_list(self):
        actor = actor_from_claims({"sub": "admin-1", "roles": ["admin", "worker"]})
        assert actor == Actor(id="admin-1", roles=frozenset({"admin", "worker"}))
        assert actor.is_admin

    def test_single_role_string(self):
        assert actor_from_claims({"sub": "w1", "roles": "worker"}).roles == {"worker"}

    def test_missing_roles_is_worker(self):
        actor = actor_from_claims({"sub": "w1"})
        assert actor.roles == frozenset()
        assert not actor.is_admin

    @pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": 42}])
    def test_missing_subject(self, claims):
        with pytest.raises(ValueError):
            actor_from_claims(claims)


# ---------------------------------------------------------------------------
# Integration Tests: dependency + middleware
# ---------------------------------------------------------------------------

class TestGetCurrentActor:
    @pytest.fixture
    def client(self):
        app = FastAPI()

        @app.get("/whoami")
        async def whoami(actor: Actor = Depends(get_current_actor)):
            return {"id": actor.id, "admin": actor.is_admin}

        return TestClient(app)

    def test_valid_token(self, client):
        token = create_jwt("admin-1", ["admin"])
        resp = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == {"id": "admin-1", "admin": True}

    def test_missing_header(self, client):
        assert client.get("/whoami").status_code == 401

    def test_wrong_scheme(self, client):
        token = create_jwt("w1", ["worker"])
        assert client.get("/whoami", headers={"Authorization": f"Token {token}"}).status_code == 401

    def test_garbage_token(self, client):
        resp = client.get("/whoami", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired session"


class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value

    def test_docs_get_their_own_policy(self):
        app = FastAPI(docs_url="/docs")
        app.add_middleware(SecurityHeadersMiddleware)

        client = TestClient(app)
        resp = client.get("/docs")
        assert resp.status_code == 200
        assert resp.headers["Content-Security-Policy"] == DOCS_CONTENT_SECURITY_POLICY
        assert resp.headers["X-Frame-Options"] == "DENY"

        resp = client.get("/openapi.json")
        assert resp.headers["Content-Security-Policy"] == SECURITY_HEADERS["Content-Security-Policy"]


class TestDevSetup:
    async def test_bootstrap_creates_tables_and_token(self, tmp_path):
        from sqlalchemy import inspect
        from sqlalchemy.ext.asyncio import create_async_engine

        from fieldops.scripts.dev_setup import bootstrap

        url = f"sqlite+aiosqlite:///{tmp_path / 'dev.db'}"
        token = await bootstrap("admin-1", ["admin"], database_url=url)
        assert actor_from_claims(decode_jwt(token)).is_admin

        engine = create_async_engine(url)
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        await engine.dispose()
        assert {"tasks", "task_assignees", "customers", "geo_locations", "activities"} <= set(tables)
