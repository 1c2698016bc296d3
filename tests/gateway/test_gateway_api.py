"""Gateway API 测试 -- 路由绑定与错误映射

测试内容：
1. 创建/分配/接受/完成全流程
2. 引擎异常映射为 HTTP 状态码与统一错误体
3. 请求头身份缺失时拒绝
4. 响应头携带 X-Request-ID
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from taskcontrol.core.config import EngineConfig
from taskcontrol.core.services import TaskEventHub

ADMIN = {"X-Company-Id": "company-a", "X-User-Id": "admin-1", "X-User-Role": "ADMIN_COMPANY"}
MGR_OPS = {"X-Company-Id": "company-a", "X-User-Id": "mgr-ops", "X-User-Role": "MANAGER"}
MGR_MAINT = {"X-Company-Id": "company-a", "X-User-Id": "mgr-maint", "X-User-Role": "MANAGER"}


def _worker(user_id: str) -> dict[str, str]:
    return {"X-Company-Id": "company-a", "X-User-Id": user_id, "X-User-Role": "WORKER"}


@pytest_asyncio.fixture
async def test_app(store_group, org, monkeypatch, tmp_path):
    monkeypatch.setenv("TASKCONTROL_DB_PATH", str(tmp_path / "unused.db"))

    from taskcontrol.gateway.main import create_app

    app = create_app()

    # 手动初始化（绕过 lifespan）
    app.state.store_group = store_group
    app.state.event_hub = TaskEventHub()
    app.state.engine_config = EngineConfig()
    return app


@pytest_asyncio.fixture
async def client(test_app):
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


async def _create(client: AsyncClient, headers=ADMIN, **fields) -> str:
    fields.setdefault("title", "Calibrate sensor")
    resp = await client.post("/api/tasks", json=fields, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["task_id"]


class TestTaskFlow:
    """HTTP 全流程"""

    async def test_create_assign_accept_finalize(self, client, seed_user):
        await seed_user("w-1", capabilities=["Calibration"])
        task_id = await _create(
            client, department="OPS", required_capabilities=["Calibration"]
        )

        resp = await client.post(
            f"/api/tasks/{task_id}/auto-assign", json={}, headers=MGR_OPS
        )
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "ASSIGNED"
        assert resp.json()["worker_id"] == "w-1"

        resp = await client.post(f"/api/tasks/{task_id}/accept", headers=_worker("w-1"))
        assert resp.status_code == 200
        assert resp.json()["state"] == "ACCEPTED"

        resp = await client.post(
            f"/api/tasks/{task_id}/finalize",
            json={"evidence_text": "Sensor within tolerance"},
            headers=_worker("w-1"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["state"] == "FINALIZED"
        assert body["finalized_by_user_id"] == "w-1"

        resp = await client.get(f"/api/tasks/{task_id}/history", headers=ADMIN)
        assert resp.status_code == 200
        assert [e["kind"] for e in resp.json()["entries"]] == ["AUTOMATIC"]

    async def test_list_scoped_for_worker(self, client, seed_user):
        await seed_user("w-1")
        mine = await _create(client, title="Mine")
        await _create(client, title="Not mine")
        resp = await client.post(
            f"/api/tasks/{mine}/assign", json={"worker_id": "w-1"}, headers=ADMIN
        )
        assert resp.status_code == 200

        resp = await client.get("/api/tasks", headers=_worker("w-1"))
        assert [t["task_id"] for t in resp.json()["tasks"]] == [mine]

        resp = await client.get("/api/tasks", params={"state": "PENDING"}, headers=ADMIN)
        assert [t["title"] for t in resp.json()["tasks"]] == ["Not mine"]

    async def test_update_task(self, client):
        task_id = await _create(client, required_capabilities=["Welding"])
        resp = await client.put(
            f"/api/tasks/{task_id}",
            json={"title": "Renamed", "required_capabilities": ["Painting"]},
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.json()["required_capabilities"] == ["Painting"]

    async def test_delegation_endpoints(self, client):
        task_id = await _create(client, headers=MGR_OPS)
        resp = await client.post(
            f"/api/tasks/{task_id}/delegate",
            json={"destination_manager_id": "mgr-maint"},
            headers=MGR_OPS,
        )
        assert resp.status_code == 200
        assert resp.json()["delegation"]["status"] == "PENDING"

        resp = await client.post(
            f"/api/tasks/{task_id}/delegation/reject",
            json={"rejection_reason": "Not my department right now"},
            headers=MGR_MAINT,
        )
        assert resp.status_code == 200
        assert resp.json()["delegation"]["status"] == "REJECTED"
        assert resp.json()["department"] == "OPS"

    async def test_request_id_header(self, client):
        resp = await client.get("/api/tasks", headers=ADMIN)
        assert resp.status_code == 200
        assert len(resp.headers["X-Request-ID"]) == 26


class TestErrorMapping:
    """引擎异常 -> HTTP 状态码"""

    async def test_not_found(self, client):
        resp = await client.get("/api/tasks/01JNOTEXIST000000000000000", headers=ADMIN)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    async def test_forbidden_for_worker(self, client):
        task_id = await _create(client)
        resp = await client.post(f"/api/tasks/{task_id}/cancel", headers=_worker("w-1"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_illegal_transition(self, client):
        task_id = await _create(client)
        resp = await client.post(
            f"/api/tasks/{task_id}/finalize",
            json={"evidence_text": "done"},
            headers=_worker("w-1"),
        )
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "ILLEGAL_STATE_TRANSITION"
        assert error["current_state"] == "PENDING"
        assert error["event"] == "FINALIZE"

    async def test_capacity_exceeded(self, client, seed_user):
        await seed_user("w-1")
        for i in range(5):
            task_id = await _create(client, title=f"Load {i}")
            await client.post(
                f"/api/tasks/{task_id}/assign", json={"worker_id": "w-1"}, headers=ADMIN
            )
        task_id = await _create(client, title="One too many")
        resp = await client.post(
            f"/api/tasks/{task_id}/assign", json={"worker_id": "w-1"}, headers=ADMIN
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CAPACITY_EXCEEDED"

    async def test_invalid_candidate(self, client):
        task_id = await _create(client)
        resp = await client.post(
            f"/api/tasks/{task_id}/assign", json={"worker_id": "mgr-ops"}, headers=ADMIN
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_CANDIDATE"

    async def test_short_rejection_reason(self, client):
        task_id = await _create(client, headers=MGR_OPS)
        await client.post(
            f"/api/tasks/{task_id}/delegate",
            json={"destination_manager_id": "mgr-maint"},
            headers=MGR_OPS,
        )
        resp = await client.post(
            f"/api/tasks/{task_id}/delegation/reject",
            json={"rejection_reason": "no"},
            headers=MGR_MAINT,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_FAILED"

    async def test_worker_cannot_auto_assign(self, client):
        task_id = await _create(client)
        resp = await client.post(f"/api/tasks/{task_id}/auto-assign", headers=_worker("w-1"))
        assert resp.status_code == 403

    async def test_force_reassign_needs_management_rights(self, client, seed_user):
        await seed_user("w-1", capabilities=["Welding"])
        await seed_user("w-2", capabilities=["Welding"])
        task_id = await _create(client, department="OPS", required_capabilities=["Welding"])
        await client.post(
            f"/api/tasks/{task_id}/assign", json={"worker_id": "w-2"}, headers=ADMIN
        )

        resp = await client.post(
            f"/api/tasks/{task_id}/auto-assign",
            json={"force_reassign": True},
            headers=MGR_MAINT,
        )
        assert resp.status_code == 403

        resp = await client.get(f"/api/tasks/{task_id}/history", headers=ADMIN)
        assert [e["kind"] for e in resp.json()["entries"]] == ["MANUAL"]

    async def test_missing_identity_headers(self, client):
        resp = await client.get("/api/tasks")
        assert resp.status_code == 422
