import json

import httpx
import pytest
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from tagrelay.api.deps import get_dispatcher, http_client
from tagrelay.core.config import settings
from tagrelay.main import app

from conftest import BOTHELP_BASE, encode, sign_payload, stripe_event


@pytest.fixture
def client(dispatcher, http, webhook_secret, monkeypatch):
    monkeypatch.setattr(settings, "bothelp_webhook_url", None)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[http_client] = lambda: http
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_event(client, event, path="/webhook", signature=None):
    payload = encode(event)
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
    return client.post(path, content=payload, headers=headers)


def test_checkout_completed_adds_tag(client, bothelp_router, customers):
    event = stripe_event(
        "checkout.session.completed",
        {"id": "cs_1", "client_reference_id": "12345", "customer": "cus_1"},
    )

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    search = json.loads(bothelp_router["search"].calls.last.request.content)
    assert search == {"telegram_id": "12345"}
    added = json.loads(bothelp_router["tag_add"].calls.last.request.content)
    assert added == {"subscriber_id": "sub_1", "tag": "sub_active"}
    assert customers.updates == [("cus_1", {"tg_id": "12345"})]


def test_payment_failed_unknown_subscriber_is_acknowledged(client, bothelp_router):
    bothelp_router["search"].respond(json={"items": []})
    event = stripe_event("invoice.payment_failed", {"id": "in_1", "customer_details": {"email": "a@b.com"}})

    with capture_logs() as logs:
        resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    search = json.loads(bothelp_router["search"].calls.last.request.content)
    assert search == {"email": "a@b.com"}
    assert bothelp_router["tag_remove"].call_count == 0
    assert bothelp_router["tag_add"].call_count == 0
    assert any(e["event"] == "subscriber_not_found" and e["log_level"] == "warning" for e in logs)


def test_bad_signature_is_rejected_without_outbound_calls(client, bothelp_router, customers):
    event = stripe_event("checkout.session.completed", {"id": "cs_1", "client_reference_id": "12345"})
    payload = encode(event)

    resp = post_event(client, event, signature=sign_payload(payload, secret="whsec_someone_else"))

    assert resp.status_code == 400
    assert "Webhook Error" in resp.text
    assert bothelp_router.calls.call_count == 0
    assert customers.reads == [] and customers.updates == []


def test_missing_signature_is_rejected(client, bothelp_router):
    payload = encode(stripe_event("invoice.payment_succeeded", {"id": "in_1"}))

    resp = client.post("/webhook", content=payload, headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.text.startswith("Webhook Error:")
    assert bothelp_router.calls.call_count == 0


def test_signed_garbage_is_rejected(client, bothelp_router):
    payload = b"not json at all"

    resp = client.post("/webhook", content=payload, headers={"Stripe-Signature": sign_payload(payload)})

    assert resp.status_code == 400
    assert "Webhook Error" in resp.text


def test_trial_ending_is_logged_only(client, bothelp_router, customers):
    event = stripe_event("customer.subscription.trial_will_end", {"id": "sub_1", "customer": "cus_1"})

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert bothelp_router.calls.call_count == 0
    assert customers.reads == []


def test_bothelp_outage_still_acknowledged(client, bothelp_router):
    for name in ("token", "search", "tag_add", "tag_remove"):
        bothelp_router[name].side_effect = httpx.ConnectError
    event = stripe_event("invoice.payment_succeeded", {"id": "in_1", "customer_email": "a@b.com"})

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_stripe_prefixed_alias(client, bothelp_router):
    event = stripe_event("customer.subscription.deleted", {"id": "sub_1", "metadata": {"tg_id": "5"}})

    resp = post_event(client, event, path="/stripe/webhook")

    assert resp.status_code == 200
    assert bothelp_router["tag_remove"].call_count == 1


def test_verified_event_is_forwarded(client, bothelp_router, monkeypatch):
    hook = bothelp_router.post("/legacy-hook", name="forward").respond(200)
    monkeypatch.setattr(settings, "bothelp_webhook_url", f"{BOTHELP_BASE}/legacy-hook")
    event = stripe_event("charge.refunded", {"id": "ch_1"})

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert hook.call_count == 1
    assert json.loads(hook.calls.last.request.content) == event


def test_forward_failure_does_not_change_response(client, bothelp_router, monkeypatch):
    bothelp_router.post("/legacy-hook", name="forward").side_effect = httpx.ConnectError
    monkeypatch.setattr(settings, "bothelp_webhook_url", f"{BOTHELP_BASE}/legacy-hook")
    event = stripe_event("charge.refunded", {"id": "ch_1"})

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.text == "OK"


@pytest.mark.parametrize("field,value", [("id", 123), ("id", ["evt"]), ("livemode", "maybe")])
def test_odd_envelope_is_still_acknowledged(client, bothelp_router, field, value):
    event = stripe_event("customer.subscription.deleted", {"id": "sub_1", "metadata": {"tg_id": "5"}})
    event[field] = value

    resp = post_event(client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert bothelp_router["tag_remove"].call_count == 1
