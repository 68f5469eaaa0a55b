import hashlib
import hmac
import json
import time
from typing import Any, Optional

import httpx
import pytest
import respx
from pydantic import SecretStr

from tagrelay.core.config import settings
from tagrelay.integrations.bothelp.client import BothelpClient
from tagrelay.integrations.bothelp.token_cache import TokenCache
from tagrelay.services.dispatcher import EventDispatcher
from tagrelay.services.identity import IdentityResolver
from tagrelay.services.subscriber_lookup import SubscriberLookup
from tagrelay.services.tag_reconciler import TagReconciler

WEBHOOK_SECRET = "whsec_test_secret"
BOTHELP_BASE = "https://bothelp.test"
TOKEN_PATH = "/openapi/oauth/token"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value, built the way Stripe signs deliveries."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + payload
    sig = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def stripe_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_test_1") -> dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "livemode": False,
        "created": 1700000000,
        "data": {"object": obj},
    }


def encode(event: dict[str, Any]) -> bytes:
    return json.dumps(event).encode()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCustomers:
    """In-memory stand-in for StripeCustomers."""

    def __init__(self, records: Optional[dict[str, dict[str, Any]]] = None, configured: bool = True):
        self.records = records or {}
        self.configured = configured
        self.reads: list[str] = []
        self.updates: list[tuple[str, dict[str, str]]] = []
        self.fail_reads = False
        self.fail_updates = False

    async def get(self, customer_id: str) -> Optional[dict[str, Any]]:
        self.reads.append(customer_id)
        if self.fail_reads:
            raise RuntimeError("stripe is down")
        return self.records.get(customer_id)

    async def update_metadata(self, customer_id: str, metadata: dict[str, str]) -> None:
        if self.fail_updates:
            raise RuntimeError("stripe is down")
        self.updates.append((customer_id, metadata))


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(WEBHOOK_SECRET))
    return WEBHOOK_SECRET


@pytest.fixture
def bothelp_router():
    router = respx.Router(base_url=BOTHELP_BASE, assert_all_called=False)
    router.post(TOKEN_PATH, name="token").respond(json={"access_token": "tok_1", "expires_in": 3600})
    router.post("/subscribers/search", name="search").respond(json={"items": [{"id": "sub_1"}]})
    router.post("/subscribers/tags/add", name="tag_add").respond(json={"success": True})
    router.post("/subscribers/tags/remove", name="tag_remove").respond(json={"success": True})
    return router


@pytest.fixture
def http(bothelp_router):
    return httpx.AsyncClient(transport=httpx.MockTransport(bothelp_router.handler))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens(http, clock):
    return TokenCache(
        http,
        token_url=f"{BOTHELP_BASE}{TOKEN_PATH}",
        client_id="client_1",
        client_secret="secret_1",
        margin_sec=60,
        default_ttl_sec=3600,
        clock=clock,
    )


@pytest.fixture
def bothelp(http, tokens):
    return BothelpClient(http, BOTHELP_BASE, tokens)


@pytest.fixture
def customers():
    return FakeCustomers()


@pytest.fixture
def dispatcher(bothelp, customers):
    resolver = IdentityResolver(customers, scheme="any", metadata_key="tg_id")
    return EventDispatcher(
        resolver,
        SubscriberLookup(bothelp),
        TagReconciler(bothelp),
        tag="sub_active",
    )
