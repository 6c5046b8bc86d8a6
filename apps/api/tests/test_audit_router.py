from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from main import app
from models.audit import Audit
from services.audit_queue import InlineJobRunner

PRODUCTS = [
    {"id": "p1", "title": "Item 1", "handle": "item-1", "seo": {"title": "", "description": "Buy Item 1 online"}},
    {"id": "p2", "title": "Item 2", "handle": "item-2", "seo": {"title": "Item 2 - Store", "description": ""}},
]
_STATE_KEYS = ("engine", "session_maker", "audit_service")


@pytest_asyncio.fixture
async def api(engine, session_maker, make_service, make_content_source):
    """Client plus a hook to swap the audit service wired into app state."""
    previous = {name: getattr(app.state, name, None) for name in _STATE_KEYS}
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.audit_service = make_service(content_source=make_content_source(products=PRODUCTS))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    for name, value in previous.items():
        setattr(app.state, name, value)


async def _add_audit(session_maker, store_id, status, created_at):
    async with session_maker() as db:
        audit = Audit(store_id=store_id, status=status, created_at=created_at, overall_score=80)
        db.add(audit)
        await db.commit()
        return audit.id


@pytest.mark.asyncio
async def test_health_endpoints(api):
    live = await api.get("/health/live")
    assert live.status_code == 200
    assert live.json() == {"alive": True}

    ready = await api.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json() == {"ready": True}

    health = await api.get("/health")
    assert health.json()["database"] == "up"
    assert health.json()["audit_queue"] == "recording"


@pytest.mark.asyncio
async def test_start_audit_returns_id_and_status(api, store, recording_runner):
    resp = await api.post("/audits", json={"store_id": store.id})

    assert resp.status_code == 202
    data = resp.json()
    assert data["audit_id"]
    assert data["status"] == "RUNNING"
    assert recording_runner.jobs[0].audit_id == data["audit_id"]


@pytest.mark.asyncio
async def test_start_audit_unknown_store_is_404(api):
    resp = await api.post("/audits", json={"store_id": "missing"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_start_audit_while_running_is_409(api, store):
    assert (await api.post("/audits", json={"store_id": store.id})).status_code == 202

    resp = await api.post("/audits", json={"store_id": store.id})

    assert resp.status_code == 409
    assert "already running" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_start_audit_within_cooldown_is_429(api, session_maker, store):
    created_at = datetime.now(timezone.utc) - timedelta(minutes=10)
    await _add_audit(session_maker, store.id, "COMPLETED", created_at)

    resp = await api.post("/audits", json={"store_id": store.id})

    assert resp.status_code == 429
    body = resp.json()
    assert "Please wait" in body["detail"]
    next_allowed = datetime.fromisoformat(body["next_allowed_time"])
    assert abs((next_allowed - (created_at + timedelta(hours=1))).total_seconds()) < 5


@pytest.mark.asyncio
async def test_inline_audit_detail_status_and_issues(api, store, make_service, make_content_source):
    app.state.audit_service = make_service(
        content_source=make_content_source(products=PRODUCTS),
        job_runner=InlineJobRunner(),
    )
    start = await api.post("/audits", json={"store_id": store.id})
    audit_id = start.json()["audit_id"]
    assert start.json()["status"] == "COMPLETED"

    detail = await api.get(f"/audits/{audit_id}")
    assert detail.status_code == 200
    assert detail.json()["critical_issues"] == 1
    assert 0 <= detail.json()["overall_score"] <= 100

    status = await api.get(f"/audits/{audit_id}/status")
    assert status.json()["status"] == "COMPLETED"
    assert status.json()["progress"] == 100

    issues = await api.get(f"/audits/{audit_id}/issues", params={"severity": "CRITICAL"})
    assert issues.status_code == 200
    payload = issues.json()
    assert payload["total"] == 1
    assert payload["items"][0]["issue_type"] == "MISSING_META_TITLE"
    assert payload["items"][0]["resource_id"] == "p1"

    by_type = await api.get(f"/audits/{audit_id}/issues", params={"type": "MISSING_META_DESCRIPTION"})
    assert [item["resource_id"] for item in by_type.json()["items"]] == ["p2"]

    history = await api.get("/audits", params={"store_id": store.id})
    assert [item["audit_id"] for item in history.json()] == [audit_id]


@pytest.mark.asyncio
async def test_cancel_running_audit(api, store, recording_runner):
    audit_id = (await api.post("/audits", json={"store_id": store.id})).json()["audit_id"]

    resp = await api.post(f"/audits/{audit_id}/cancel")
    assert resp.status_code == 200
    assert resp.json() == {"audit_id": audit_id, "cancelled": True}
    assert recording_runner.cancelled == [f"audit:{audit_id}"]

    status = await api.get(f"/audits/{audit_id}/status")
    assert status.json()["status"] == "FAILED"

    again = await api.post(f"/audits/{audit_id}/cancel")
    assert again.json()["cancelled"] is False


@pytest.mark.asyncio
async def test_unknown_audit_routes_are_404(api):
    assert (await api.get("/audits/nope")).status_code == 404
    assert (await api.get("/audits/nope/status")).status_code == 404
    assert (await api.get("/audits/nope/issues")).status_code == 404
    assert (await api.post("/audits/nope/cancel")).status_code == 404
