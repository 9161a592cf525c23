from __future__ import annotations

import json
from types import SimpleNamespace

from fastapi.testclient import TestClient

from app.api.routes import payment_webhook
from app.main import app
from app.services.payment_gateway import compute_webhook_signature

SECRET = "webhook-secret"


class StubTask:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.calls: list[dict[str, object]] = []
        self.error = error

    def delay(self, **kwargs: object) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append(kwargs)


def _install(monkeypatch, stub_task: StubTask) -> None:
    monkeypatch.setattr(
        payment_webhook,
        "get_settings",
        lambda: SimpleNamespace(
            payment_gateway_webhook_secret=SECRET,
            payment_webhook_enqueue_timeout_ms=250,
        ),
    )
    monkeypatch.setattr(payment_webhook, "process_payment_webhook", stub_task)


def _post(client: TestClient, payload: object, *, signature: str | None = None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers["X-Webhook-Signature"] = (
        signature if signature is not None else compute_webhook_signature(secret=SECRET, body=body)
    )
    return client.post("/webhooks/payments", content=body, headers=headers)


def test_webhook_enqueues_event_when_signature_is_valid(monkeypatch) -> None:
    stub_task = StubTask()
    _install(monkeypatch, stub_task)

    client = TestClient(app)
    response = _post(
        client,
        {"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_000001", "value": 5.0}},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "queued"}
    assert stub_task.calls == [
        {"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_000001", "value": 5.0}}
    ]


def test_webhook_rejects_invalid_signature(monkeypatch) -> None:
    stub_task = StubTask()
    _install(monkeypatch, stub_task)

    client = TestClient(app)
    response = _post(
        client,
        {"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_000001"}},
        signature="0" * 64,
    )

    assert response.status_code == 401
    assert response.json()["code"] == "E_INVALID_SIGNATURE"
    assert stub_task.calls == []


def test_webhook_rejects_missing_signature(monkeypatch) -> None:
    stub_task = StubTask()
    _install(monkeypatch, stub_task)

    client = TestClient(app)
    response = client.post(
        "/webhooks/payments",
        json={"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_000001"}},
    )

    assert response.status_code == 401
    assert stub_task.calls == []


def test_webhook_ignores_payload_without_payment_id(monkeypatch) -> None:
    stub_task = StubTask()
    _install(monkeypatch, stub_task)

    client = TestClient(app)
    response = _post(client, {"event": "PAYMENT_CONFIRMED", "payment": {}})

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}
    assert stub_task.calls == []


def test_webhook_ignores_non_json_body(monkeypatch) -> None:
    stub_task = StubTask()
    _install(monkeypatch, stub_task)
    body = b"not-json"

    client = TestClient(app)
    response = client.post(
        "/webhooks/payments",
        content=body,
        headers={"X-Webhook-Signature": compute_webhook_signature(secret=SECRET, body=body)},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}
    assert stub_task.calls == []


def test_webhook_returns_503_when_enqueue_fails(monkeypatch) -> None:
    stub_task = StubTask(error=ConnectionError("broker down"))
    _install(monkeypatch, stub_task)

    client = TestClient(app)
    response = _post(
        client,
        {"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_000001"}},
    )

    assert response.status_code == 503
    assert response.json() == {"status": "retry"}
