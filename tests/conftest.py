# ruff: noqa: S101
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.core.config import settings
from app.core.database import build_engine, build_session_factory, get_db, init_db
from app.core.exceptions import AnalysisError
from app.core.kill_switch import kill_switch
from app.crud import user_role_crud
from app.crud.user_role import UserRoleCreate
from app.main import app
from app.models.usage_event import ResourceType
from app.models.user_role import AppRole
from app.models.user_subscription import SubscriptionTier
from app.schemas.diagnostic import DiagnosisResult
from app.services.analysis_service import get_analyzer
from app.services.stripe_service import StripeService, get_payment_gateway


def make_token(user_id: str, email: Optional[str] = None) -> str:
    """HS256 access token shaped like the ones Supabase issues"""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=1)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeAnalyzer:
    """Stands in for the external diagnosis model.

    `gate` holds every call until it is set; `fail` makes calls raise
    AnalysisError; `delay` sleeps before answering.
    """

    def __init__(self) -> None:
        self.calls: list[ResourceType] = []
        self.fail = False
        self.delay: float = 0.0
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def analyze(
        self,
        resource_type: ResourceType,
        payload_ref: Optional[str] = None,
        description: Optional[str] = None,
    ) -> DiagnosisResult:
        self.calls.append(resource_type)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise AnalysisError("model unavailable")
        return DiagnosisResult(
            diagnosis_summary="Compressor relay is failing",
            probable_causes=["Worn start relay", "Dirty condenser coils"],
            estimated_cost_min=80,
            estimated_cost_max=200,
            urgency="warning",
            scam_alerts=["Relay swaps rarely justify a new compressor"],
            fix_instructions="Unplug the unit and replace the start relay.",
        )


class FakeGateway(StripeService):
    """Stripe without the network.

    Checkout references are handed out in sequence; `outcomes` decides what a
    verification of each reference sees. Webhook signatures are accepted when
    they equal VALID_SIGNATURE; the event mapping is the real one.
    """

    VALID_SIGNATURE = "t=1,v1=valid"

    def __init__(self) -> None:
        super().__init__()
        self.outcomes: Dict[str, str] = {}
        self.checkout_fails = False
        self.lookup_fails = False
        self.lookups: list[str] = []
        self._sequence = 0

    async def create_checkout_session(self, **kwargs: Any) -> Dict[str, Any]:
        if self.checkout_fails:
            return {"success": False, "error": "card network down"}
        self._sequence += 1
        reference = f"cs_test_{self._sequence}"
        self.outcomes.setdefault(reference, "pending")
        return {
            "success": True,
            "reference": reference,
            "checkout_url": f"https://checkout.stripe.test/{reference}",
        }

    async def get_payment_outcome(self, reference: str) -> Dict[str, Any]:
        self.lookups.append(reference)
        if self.lookup_fails:
            return {"success": False, "error": "timeout"}
        return {"success": True, "outcome": self.outcomes.get(reference, "failed")}

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        return signature == self.VALID_SIGNATURE


def webhook_body(event_id: str, event_type: str, reference: str, payment_status: str = "paid") -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {"object": {"id": reference, "object": "checkout.session", "payment_status": payment_status}},
        }
    ).encode()


@pytest.fixture(autouse=True)
def _reset_kill_switch():
    kill_switch.reset()
    yield
    kill_switch.reset()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    # File backed so that concurrent sessions really contend for the database
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'diagnostics.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_maker: async_sessionmaker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_maker: async_sessionmaker, analyzer: FakeAnalyzer, gateway: FakeGateway):
    async def _override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_admin(session_maker: async_sessionmaker):
    async def _make_admin(user_id: str) -> None:
        async with session_maker() as session:
            await user_role_crud.create(session, obj_in=UserRoleCreate(user_id=user_id, role=AppRole.ADMIN))

    return _make_admin


@pytest_asyncio.fixture
async def upgrade(client: AsyncClient, gateway: FakeGateway):
    """Put a user on a paid tier through the real checkout and verify flow"""

    async def _upgrade(user_id: str, tier: SubscriptionTier) -> str:
        checkout = await client.post(
            "/api/billing/checkout", json={"tier": tier.value}, headers=auth_headers(user_id)
        )
        assert checkout.status_code == 200, checkout.text
        reference = checkout.json()["reference"]
        gateway.outcomes[reference] = "success"
        verified = await client.post(
            "/api/billing/verify", json={"reference": reference}, headers=auth_headers(user_id)
        )
        assert verified.json()["status"] == "success"
        return reference

    return _upgrade
