"""
HTTP tests for the task and activity endpoints.

Covers status codes, the error envelope, and the request/response shapes;
lifecycle semantics are tested at the service level in test_tasks.py.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN, WORKER_1, WORKER_2, auth_headers

TASKS = "/api/v1/tasks/"


async def create(client: AsyncClient, **body) -> dict:
    body.setdefault("title", "Sửa máy lạnh")
    resp = await client.post(TASKS, json=body, headers=auth_headers(ADMIN))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuthentication:
    async def test_no_token(self, client):
        resp = await client.get(TASKS)
        assert resp.status_code == 401
        assert resp.json() == {
            "error": {"code": "UNAUTHORIZED", "message": "Authentication required", "status": 401}
        }

    async def test_bad_token(self, client):
        resp = await client.get(TASKS, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestTaskEndpoints:
    async def test_create_and_get(self, client):
        task = await create(
            client,
            title="Lắp camera",
            customer_name="Cô Hoa",
            geo_location={"address": "5 Nguyễn Huệ", "lat": 10.77, "lng": 106.7},
        )
        assert task["status"] == "PREPARING"
        assert task["customer"]["name"] == "Cô Hoa"
        assert task["geo_location"]["address"] == "5 Nguyễn Huệ"

        resp = await client.get(f"{TASKS}{task['id']}", headers=auth_headers(ADMIN))
        assert resp.status_code == 200
        assert resp.json()["title"] == "Lắp camera"

    async def test_worker_cannot_create(self, client):
        resp = await client.post(TASKS, json={"title": "x"}, headers=auth_headers(WORKER_1))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_invalid_body(self, client):
        resp = await client.post(TASKS, json={"title": ""}, headers=auth_headers(ADMIN))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_missing_task(self, client):
        resp = await client.get(f"{TASKS}9999", headers=auth_headers(ADMIN))
        assert resp.status_code == 404
        assert resp.json()["error"] == {"code": "NOT_FOUND", "message": "Task not found", "status": 404}

    async def test_patch(self, client):
        task = await create(client)
        resp = await client.patch(
            f"{TASKS}{task['id']}", json={"description": "Tầng 3"}, headers=auth_headers(ADMIN)
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Tầng 3"


class TestStatusEndpoint:
    async def test_worker_flow_and_error_codes(self, client):
        task = await create(client)
        url = f"{TASKS}{task['id']}"

        resp = await client.put(f"{url}/status", json={"status": "READY"}, headers=auth_headers(ADMIN))
        assert resp.status_code == 200
        assert resp.json()["status"] == "READY"

        resp = await client.put(
            f"{url}/assignees", json={"assignee_ids": ["w1", " w1 "]}, headers=auth_headers(ADMIN)
        )
        assert resp.status_code == 200
        assert resp.json()["assignee_ids"] == ["w1"]

        resp = await client.put(
            f"{url}/status", json={"status": "IN_PROGRESS"}, headers=auth_headers(WORKER_2)
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "NOT_ASSIGNED"

        resp = await client.put(f"{url}/status", json={"status": "ON_HOLD"}, headers=auth_headers(WORKER_1))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "INVALID_TRANSITION"

        resp = await client.put(
            f"{url}/status", json={"status": "IN_PROGRESS"}, headers=auth_headers(WORKER_1)
        )
        assert resp.status_code == 200
        assert resp.json()["started_at"] is not None

    async def test_unknown_status_value(self, client):
        task = await create(client)
        resp = await client.put(
            f"{TASKS}{task['id']}/status", json={"status": "DONE"}, headers=auth_headers(ADMIN)
        )
        assert resp.status_code == 422

    async def test_worker_cannot_set_assignees(self, client):
        task = await create(client)
        resp = await client.put(
            f"{TASKS}{task['id']}/assignees", json={"assignee_ids": ["w1"]}, headers=auth_headers(WORKER_1)
        )
        assert resp.status_code == 403


class TestListingEndpoints:
    async def test_search_and_pagination(self, client):
        for title in ("Mua quạt", "Mua quat trần", "Sửa tủ lạnh"):
            await create(client, title=title)

        resp = await client.get(
            f"{TASKS}search", params={"search": "mua quat", "take": 1}, headers=auth_headers(ADMIN)
        )
        assert resp.status_code == 200
        first = resp.json()
        assert len(first["tasks"]) == 1
        assert first["has_next_page"]

        resp = await client.get(
            f"{TASKS}search",
            params={"search": "mua quat", "take": 1, "cursor": first["next_cursor"]},
            headers=auth_headers(ADMIN),
        )
        second = resp.json()
        assert not second["has_next_page"]
        assert {t["title"] for t in first["tasks"] + second["tasks"]} == {"Mua quạt", "Mua quat trần"}

    async def test_status_filter_repeated_param(self, client):
        a = await create(client, title="A")
        await create(client, title="B")
        await client.put(f"{TASKS}{a['id']}/status", json={"status": "READY"}, headers=auth_headers(ADMIN))

        resp = await client.get(
            TASKS, params=[("status", "READY"), ("status", "ON_HOLD")], headers=auth_headers(ADMIN)
        )
        assert [t["id"] for t in resp.json()["tasks"]] == [a["id"]]

    async def test_worker_listing_requires_scope(self, client):
        resp = await client.get(TASKS, headers=auth_headers(WORKER_1))
        assert resp.status_code == 403

        resp = await client.get(TASKS, params={"assigned_only": "true"}, headers=auth_headers(WORKER_1))
        assert resp.status_code == 200
        assert resp.json()["tasks"] == []

    async def test_bad_cursor(self, client):
        resp = await client.get(TASKS, params={"cursor": "xyz"}, headers=auth_headers(ADMIN))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("take", [0, 101])
    async def test_take_out_of_range(self, client, take):
        resp = await client.get(TASKS, params={"take": take}, headers=auth_headers(ADMIN))
        assert resp.status_code == 422


class TestCommentsAndActivities:
    async def test_comment_then_read_activity(self, client):
        task = await create(client)
        url = f"{TASKS}{task['id']}"
        await client.put(f"{url}/assignees", json={"assignee_ids": ["w1"]}, headers=auth_headers(ADMIN))

        resp = await client.post(f"{url}/comments", json={"comment": "Đang tới"}, headers=auth_headers(WORKER_1))
        assert resp.status_code == 201
        assert resp.json()["payload"] == {"comment": "Đang tới"}

        resp = await client.post(f"{url}/comments", json={"comment": "hi"}, headers=auth_headers(WORKER_2))
        assert resp.status_code == 403

        resp = await client.post(f"{url}/comments", json={"comment": "   "}, headers=auth_headers(ADMIN))
        assert resp.status_code == 422

        resp = await client.get(
            "/api/v1/activities/", params={"topic": f"TASK_{task['id']}"}, headers=auth_headers(WORKER_1)
        )
        assert resp.status_code == 200
        actions = [a["action"] for a in resp.json()["activities"]]
        assert actions[0] == "TASK_COMMENTED"
        assert "TASK_CREATED" in actions

    @pytest.mark.parametrize("take", [0, 101])
    async def test_activity_take_out_of_range(self, client, take):
        resp = await client.get("/api/v1/activities/", params={"take": take}, headers=auth_headers(ADMIN))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_worker_cannot_read_all_activity(self, client):
        resp = await client.get("/api/v1/activities/", headers=auth_headers(WORKER_1))
        assert resp.status_code == 403
