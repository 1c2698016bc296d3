"""健康检查测试 -- /health 与 /ready"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def client(store_group, monkeypatch, tmp_path):
    monkeypatch.setenv("TASKCONTROL_DB_PATH", str(tmp_path / "unused.db"))

    from taskcontrol.gateway.main import create_app

    app = create_app()
    app.state.store_group = store_group

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class TestHealth:
    async def test_liveness(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_readiness(self, client):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        assert body["checks"]["sqlite"] == "ok"
        assert body["checks"]["wal_mode"] == "ok"
