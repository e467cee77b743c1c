import pytest
from fastapi.testclient import TestClient

from backend import main as backend_main
from backend.app.billing.config import load_billing_config
from backend.app.routes import billing as billing_routes
from conftest import WEBHOOK_SECRET, build_payload, sign

WEBHOOK_URL = "/api/webhooks/lemonsqueezy"


@pytest.fixture
def client(monkeypatch, billing_service):
    config = load_billing_config(env={"LEMONSQUEEZY_WEBHOOK_SECRET": WEBHOOK_SECRET})
    monkeypatch.setattr(billing_routes, "get_billing_config", lambda: config)
    monkeypatch.setattr(billing_routes, "get_billing_service", lambda: billing_service)
    return TestClient(backend_main.app)


def _post(client, raw: bytes, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Signature"] = signature
    return client.post(WEBHOOK_URL, content=raw, headers=headers)


def test_valid_webhook_returns_acknowledgement(client, repository):
    raw = build_payload("subscription_created")

    response = _post(client, raw, sign(raw))

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["eventName"] == "subscription_created"
    assert payload["action"] == "create_or_activate"
    assert payload["ignored"] is False
    assert payload["userId"] == "user-1"
    assert payload["planType"] == "testimonialhub_pro"
    assert payload["planStatus"] == "active"
    assert repository.accounts["user-1"].subscription_id == "9001"


def test_unknown_event_is_acknowledged(client):
    raw = b'{"meta": {"event_name": "order_created"}, "data": {}}'

    response = _post(client, raw, sign(raw))

    assert response.status_code == 200
    assert response.json()["ignored"] is True
    assert response.json()["userId"] is None


def test_invalid_signature_returns_401(client, repository):
    raw = build_payload("subscription_created")

    response = _post(client, raw, "sha256=" + "0" * 64)

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "verification_failed"
    assert repository.updates == []


def test_missing_signature_header_returns_401(client):
    response = _post(client, build_payload("subscription_created"))
    assert response.status_code == 401


def test_malformed_body_returns_400(client):
    raw = b"{not-json"
    response = _post(client, raw, sign(raw))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "deserialization_failed"


def test_unknown_account_returns_404(client):
    raw = build_payload("subscription_cancelled", subscription_id=31337)

    response = _post(client, raw, sign(raw))

    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["error"] == "account_not_found"
    assert detail["subscription_id"] == "31337"


def test_persistence_failure_returns_503(client, repository):
    repository.fail_updates = True
    raw = build_payload("subscription_created")

    response = _post(client, raw, sign(raw))

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "persistence_failed"


def test_unexpected_error_returns_500(monkeypatch, client):
    class ExplodingService:
        def handle_webhook(self, raw_payload, signature):
            raise RuntimeError("boom")

    monkeypatch.setattr(billing_routes, "get_billing_service", lambda: ExplodingService())

    response = _post(client, b"{}", "sig")

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "internal_error"


def test_webhook_processing_runs_off_the_event_loop(monkeypatch, client, repository):
    offloaded = []

    async def recording_threadpool(func, *args):
        offloaded.append(func)
        return func(*args)

    monkeypatch.setattr(billing_routes, "run_in_threadpool", recording_threadpool)
    raw = build_payload("subscription_created")

    response = _post(client, raw, sign(raw))

    assert response.status_code == 200
    assert len(offloaded) == 1
    assert offloaded[0].__name__ == "handle_webhook"
    assert repository.accounts["user-1"].subscription_id == "9001"


def test_custom_signature_header(monkeypatch, client):
    config = load_billing_config(
        env={
            "LEMONSQUEEZY_WEBHOOK_SECRET": WEBHOOK_SECRET,
            "LEMONSQUEEZY_SIGNATURE_HEADER": "X-Lemon-Signature",
        }
    )
    monkeypatch.setattr(billing_routes, "get_billing_config", lambda: config)
    raw = build_payload("subscription_created")

    rejected = _post(client, raw, sign(raw))
    accepted = client.post(
        WEBHOOK_URL,
        content=raw,
        headers={"Content-Type": "application/json", "X-Lemon-Signature": sign(raw)},
    )

    assert rejected.status_code == 401
    assert accepted.status_code == 200


def test_healthz(client):
    response = client.get("/api/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_incident_email_metrics_endpoint(client):
    response = client.get("/api/metrics/incident-emails")
    assert response.status_code == 200
    assert {"runs", "sent", "failed", "last_run_at", "last_error"} <= set(response.json())
