# ruff: noqa: S101
from __future__ import annotations

import asyncio
import json

import pytest
from dateutil.relativedelta import relativedelta
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.crud import usage_counter, usage_event, user_subscription
from app.main import app
from app.models.diagnostic import Diagnostic, DiagnosticStatus
from app.models.usage_event import ResourceType, UsageEvent
from app.models.user_subscription import SubscriptionTier
from app.schemas.auth import TokenData
from app.schemas.diagnostic import DiagnosticCreate
from app.services.diagnostic_service import diagnostic_service
from app.utils.utils import utcnow
from tests.conftest import FakeAnalyzer, auth_headers, make_token

PHOTO = {"resource_type": "photo", "payload_ref": "https://cdn.example.com/fridge.jpg", "description": "Fridge is warm"}


async def _count(session_maker, column, *conditions) -> int:
    async with session_maker() as session:
        result = await session.execute(select(func.count(column)).where(*conditions))
        return result.scalar() or 0


@pytest.mark.asyncio
async def test_free_user_photo_allowance(client: AsyncClient, analyzer: FakeAnalyzer) -> None:
    headers = auth_headers("free-user")

    first = await client.post("/api/diagnostics/", json=PHOTO, headers=headers)
    assert first.status_code == 201, first.text
    body = first.json()
    assert body["diagnostic"]["status"] == "completed"
    assert body["diagnostic"]["diagnosis_summary"] == "Compressor relay is failing"
    assert body["usage"] == {"used": 1, "limit": 2, "remaining": 1, "tier": "free"}

    second = await client.post("/api/diagnostics/", json=PHOTO, headers=headers)
    assert second.status_code == 201
    assert second.json()["usage"]["remaining"] == 0

    third = await client.post("/api/diagnostics/", json=PHOTO, headers=headers)
    assert third.status_code == 429
    rejected = third.json()
    assert rejected["error"] == "limit_reached"
    assert rejected["limit"] == 2
    assert rejected["used"] == 2
    assert rejected["tier"] == "free"
    assert rejected["remaining"] == 0
    assert rejected["period_end"] is not None

    # The rejected request never reached the model
    assert len(analyzer.calls) == 2


@pytest.mark.asyncio
async def test_video_is_locked_on_free(client: AsyncClient, analyzer: FakeAnalyzer, session_maker) -> None:
    response = await client.post(
        "/api/diagnostics/",
        json={"resource_type": "video", "payload_ref": "https://cdn.example.com/washer.mp4"},
        headers=auth_headers("free-user"),
    )

    assert response.status_code == 403
    assert response.json()["error"] == "locked"
    assert response.json()["tier"] == "free"
    assert analyzer.calls == []
    assert await _count(session_maker, Diagnostic.id) == 0


@pytest.mark.asyncio
async def test_video_unlocked_after_upgrade(client: AsyncClient, upgrade) -> None:
    await upgrade("pro-user", SubscriptionTier.PRO)

    response = await client.post(
        "/api/diagnostics/",
        json={"resource_type": "video", "payload_ref": "https://cdn.example.com/washer.mp4"},
        headers=auth_headers("pro-user"),
    )

    assert response.status_code == 201
    assert response.json()["usage"]["tier"] == "pro"


@pytest.mark.asyncio
async def test_failed_analysis_is_not_charged(client: AsyncClient, analyzer: FakeAnalyzer, session_maker) -> None:
    headers = auth_headers("free-user")
    analyzer.fail = True

    response = await client.post("/api/diagnostics/", json=PHOTO, headers=headers)

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "analysis_failed"
    assert await _count(session_maker, UsageEvent.id) == 0
    assert await _count(
        session_maker,
        Diagnostic.id,
        Diagnostic.status == DiagnosticStatus.FAILED,
        Diagnostic.failure_reason == "analysis_failed",
    ) == 1

    usage = await client.get("/api/billing/usage", headers=headers)
    assert usage.json()["usage"]["photo"]["remaining"] == 2


@pytest.mark.asyncio
async def test_analysis_timeout_is_a_failure(
    client: AsyncClient, analyzer: FakeAnalyzer, session_maker, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "analysis_timeout_seconds", 0.05)
    analyzer.delay = 1.0

    response = await client.post("/api/diagnostics/", json=PHOTO, headers=auth_headers("free-user"))

    assert response.status_code == 502
    assert await _count(session_maker, UsageEvent.id) == 0


@pytest.mark.asyncio
async def test_anonymous_submission_is_rejected(client: AsyncClient, analyzer: FakeAnalyzer) -> None:
    response = await client.post("/api/diagnostics/", json=PHOTO)

    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"
    assert analyzer.calls == []


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/diagnostics/", json=PHOTO, headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_property_is_not_a_diagnostic_type(client: AsyncClient) -> None:
    response = await client.post(
        "/api/diagnostics/", json={"resource_type": "property"}, headers=auth_headers("free-user")
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_parallel_submissions_cannot_overspend(
    client: AsyncClient, analyzer: FakeAnalyzer, session_maker
) -> None:
    headers = auth_headers("racer")
    # Open the subscription before the burst
    await client.get("/api/billing/usage", headers=headers)

    parallel = 4
    analyzer.gate = asyncio.Event()

    async def release_when_all_admitted() -> None:
        while len(analyzer.calls) < parallel:
            await asyncio.sleep(0.01)
        analyzer.gate.set()

    responses, _ = await asyncio.gather(
        asyncio.gather(*(client.post("/api/diagnostics/", json=PHOTO, headers=headers) for _ in range(parallel))),
        asyncio.wait_for(release_when_all_admitted(), timeout=30),
    )

    statuses = sorted(r.status_code for r in responses)
    assert statuses == [201, 201, 429, 429]
    for response in responses:
        if response.status_code == 429:
            assert response.json()["error"] == "limit_reached"

    assert await _count(session_maker, UsageEvent.id) == 2
    assert await _count(
        session_maker,
        Diagnostic.id,
        Diagnostic.status == DiagnosticStatus.FAILED,
        Diagnostic.failure_reason == "limit_reached",
    ) == 2


@pytest.mark.asyncio
async def test_kill_switch_blocks_every_tier(client: AsyncClient, analyzer: FakeAnalyzer, upgrade, make_admin) -> None:
    await upgrade("business-user", SubscriptionTier.BUSINESS)
    await make_admin("ops")
    toggled = await client.post("/api/admin/kill-switch", json={"enabled": True}, headers=auth_headers("ops"))
    assert toggled.status_code == 200

    for headers in (auth_headers("business-user"), auth_headers("free-user"), {}):
        response = await client.post("/api/diagnostics/", json=PHOTO, headers=headers)
        assert response.status_code == 503
        assert response.json()["error"] == "service_disabled"
    assert analyzer.calls == []

    await client.post("/api/admin/kill-switch", json={"enabled": False}, headers=auth_headers("ops"))
    response = await client.post("/api/diagnostics/", json=PHOTO, headers=auth_headers("business-user"))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_history_lists_own_diagnostics_only(client: AsyncClient) -> None:
    await client.post("/api/diagnostics/", json=PHOTO, headers=auth_headers("alice"))
    await client.post(
        "/api/diagnostics/", json={"resource_type": "text", "description": "Dryer squeaks"}, headers=auth_headers("bob")
    )

    history = await client.get("/api/diagnostics/", headers=auth_headers("alice"))
    assert history.status_code == 200
    body = history.json()
    assert body["total_count"] == 1
    diagnostic_id = body["diagnostics"][0]["id"]

    own = await client.get(f"/api/diagnostics/{diagnostic_id}", headers=auth_headers("alice"))
    assert own.status_code == 200
    other = await client.get(f"/api/diagnostics/{diagnostic_id}", headers=auth_headers("bob"))
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_abandoned_submission_is_not_charged(db, session_maker) -> None:
    analyzer = FakeAnalyzer()
    analyzer.gate = asyncio.Event()
    user = TokenData(user_id="walks-away", email="walks-away@example.com")

    task = asyncio.create_task(
        diagnostic_service.submit(db, user, DiagnosticCreate(resource_type=ResourceType.TEXT, description="Hum"), analyzer)
    )
    await asyncio.wait_for(analyzer.entered.wait(), timeout=10)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await _count(session_maker, UsageEvent.id) == 0
    assert await _count(
        session_maker,
        Diagnostic.id,
        Diagnostic.status == DiagnosticStatus.FAILED,
        Diagnostic.failure_reason == "abandoned",
    ) == 1


async def _database_locked(*args, **kwargs):
    raise OperationalError("UPDATE usage_counters", {}, Exception("database is locked"))


async def _already_charged(*args, **kwargs):
    return object()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("target", "attribute", "replacement"),
    [
        (usage_counter, "increment_if_below", _database_locked),
        (usage_event, "get_by_diagnostic_id", _already_charged),
    ],
)
async def test_failed_usage_commit_fails_the_diagnostic(
    client: AsyncClient, session_maker, monkeypatch, target, attribute, replacement
) -> None:
    headers = auth_headers("unlucky-commit")
    monkeypatch.setattr(target, attribute, replacement)

    response = await client.post(
        "/api/diagnostics/", json={"resource_type": "text", "description": "Oven won't heat"}, headers=headers
    )

    assert response.status_code == 502
    assert response.json()["error"] == "analysis_failed"
    assert await _count(session_maker, UsageEvent.id) == 0
    assert await _count(
        session_maker,
        Diagnostic.id,
        Diagnostic.status == DiagnosticStatus.FAILED,
        Diagnostic.failure_reason == "commit_failed",
    ) == 1
    assert await _count(session_maker, Diagnostic.id, Diagnostic.status == DiagnosticStatus.PENDING) == 0


@pytest.mark.asyncio
async def test_client_disconnect_abandons_the_submission(
    client: AsyncClient, analyzer: FakeAnalyzer, session_maker
) -> None:
    analyzer.gate = asyncio.Event()
    body = json.dumps({"resource_type": "text", "description": "Dishwasher hums"}).encode()
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/diagnostics/",
        "raw_path": b"/api/diagnostics/",
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", b"application/json"),
            (b"content-length", str(len(body)).encode()),
            (b"authorization", f"Bearer {make_token('leaves-early')}".encode()),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    body_sent = False
    sent = []

    async def receive():
        nonlocal body_sent
        if not body_sent:
            body_sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        # The client hangs up once the analysis is under way
        await analyzer.entered.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    await asyncio.wait_for(app(scope, receive, send), timeout=10)

    assert sent[0]["status"] == 499
    assert len(analyzer.calls) == 1
    assert await _count(session_maker, UsageEvent.id) == 0
    assert await _count(
        session_maker,
        Diagnostic.id,
        Diagnostic.status == DiagnosticStatus.FAILED,
        Diagnostic.failure_reason == "abandoned",
    ) == 1


@pytest.mark.asyncio
async def test_commit_waits_for_a_plan_change_made_during_analysis(db, session_maker) -> None:
    analyzer = FakeAnalyzer()
    analyzer.gate = asyncio.Event()
    user = TokenData(user_id="mid-upgrade", email="mid-upgrade@example.com")

    task = asyncio.create_task(
        diagnostic_service.submit(
            db,
            user,
            DiagnosticCreate(resource_type=ResourceType.PHOTO, payload_ref="https://cdn.example.com/range.jpg"),
            analyzer,
        )
    )
    await asyncio.wait_for(analyzer.entered.wait(), timeout=10)

    async with session_maker() as other:
        now = utcnow()
        await user_subscription.lock_for_user(other, "mid-upgrade", now)
        await user_subscription.apply_paid_period(
            other, "mid-upgrade", SubscriptionTier.PRO, now, now + relativedelta(months=1), "cs_during_analysis"
        )
        analyzer.gate.set()
        # The submission reaches its commit and waits behind the uncommitted upgrade
        await asyncio.sleep(0.3)
        assert not task.done()
        await other.commit()

    response = await asyncio.wait_for(task, timeout=30)

    assert response.usage.tier == SubscriptionTier.PRO
    assert response.usage.limit == 30
    assert response.usage.used == 1
