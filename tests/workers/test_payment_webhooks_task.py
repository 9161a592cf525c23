from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from app.economy.commissions.types import CommissionStatus, Effect, WebhookApplyResult
from app.economy.errors import NotFoundError
from app.workers.tasks import payment_webhooks


def _install_slot(monkeypatch, *, acquire_outcome: str) -> list[str]:
    statuses: list[str] = []

    async def fake_acquire(charge_ref, event_kind, *, task_id, processing_ttl_seconds):
        return acquire_outcome

    async def fake_set_status(charge_ref, event_kind, *, status):
        statuses.append(status)

    monkeypatch.setattr(payment_webhooks, "_acquire_processing_slot", fake_acquire)
    monkeypatch.setattr(payment_webhooks, "_set_slot_status", fake_set_status)
    return statuses


def _install_apply(monkeypatch, *, result=None, error: Exception | None = None) -> list[str]:
    seen_events: list[str] = []

    async def fake_run_serialized(operation, *, attempts):
        return await operation(object())

    async def fake_apply_webhook_event(session, *, event, payment, now_utc):
        seen_events.append(event)
        if error is not None:
            raise error
        return result

    monkeypatch.setattr(payment_webhooks, "run_serialized", fake_run_serialized)
    monkeypatch.setattr(
        payment_webhooks.CommissionSettlementService,
        "apply_webhook_event",
        fake_apply_webhook_event,
    )
    return seen_events


def test_process_payment_webhook_returns_ignored_for_malformed_payload() -> None:
    assert payment_webhooks.process_payment_webhook(event=None, payment=None) == "ignored"
    assert (
        payment_webhooks.process_payment_webhook(event="PAYMENT_CONFIRMED", payment={"value": 1})
        == "ignored"
    )


def test_process_payment_webhook_delegates_to_async_processing(monkeypatch) -> None:
    captured: dict[str, object] = {}

    async def fake_process(*, event, payment, charge_ref, task_id=None):
        captured.update(event=event, payment=payment, charge_ref=charge_ref, task_id=task_id)
        return "apply"

    monkeypatch.setattr(payment_webhooks, "process_payment_event_async", fake_process)

    result = payment_webhooks.process_payment_webhook(
        event="PAYMENT_CONFIRMED",
        payment={"id": "pay_000001"},
    )

    assert result == "apply"
    assert captured["charge_ref"] == "pay_000001"
    assert captured["event"] == "PAYMENT_CONFIRMED"
    assert captured["task_id"] is None


def test_process_payment_webhook_dead_letters_after_last_retry(monkeypatch) -> None:
    events: list[dict[str, object]] = []

    async def fake_process(*, event, payment, charge_ref, task_id=None):
        raise RuntimeError("database unavailable")

    async def fake_emit(*, event_type, payload, status="SENT"):
        events.append({"event_type": event_type, "payload": payload, "status": status})

    monkeypatch.setattr(payment_webhooks, "process_payment_event_async", fake_process)
    monkeypatch.setattr(payment_webhooks, "emit_reliability_event", fake_emit)
    monkeypatch.setattr(payment_webhooks, "TASK_MAX_RETRIES", 0)

    with pytest.raises(RuntimeError):
        payment_webhooks.process_payment_webhook(
            event="PAYMENT_RECEIVED",
            payment={"id": "pay_000001"},
        )

    assert [event["event_type"] for event in events] == ["payment_webhook_failed_final"]
    assert events[0]["status"] == "DEAD"
    assert events[0]["payload"]["charge_ref"] == "pay_000001"


def test_process_payment_event_async_applies_and_marks_processed(monkeypatch) -> None:
    statuses = _install_slot(monkeypatch, acquire_outcome="created")
    seen_events = _install_apply(
        monkeypatch,
        result=WebhookApplyResult(
            commission_id=uuid4(),
            outcome=Effect.APPLY,
            status=CommissionStatus.PAID,
            event="PAYMENT_CONFIRMED",
        ),
    )

    outcome = asyncio.run(
        payment_webhooks.process_payment_event_async(
            event="payment_confirmed",
            payment={"id": "pay_000001"},
            charge_ref="pay_000001",
        )
    )

    assert outcome == "apply"
    assert seen_events == ["PAYMENT_CONFIRMED"]
    assert statuses == ["PROCESSED"]


def test_process_payment_event_async_skips_duplicates(monkeypatch) -> None:
    statuses = _install_slot(monkeypatch, acquire_outcome="duplicate")
    seen_events = _install_apply(monkeypatch)

    outcome = asyncio.run(
        payment_webhooks.process_payment_event_async(
            event="PAYMENT_CONFIRMED",
            payment={"id": "pay_000001"},
            charge_ref="pay_000001",
        )
    )

    assert outcome == "duplicate"
    assert seen_events == []
    assert statuses == []


def test_process_payment_event_async_drops_unknown_commission(monkeypatch) -> None:
    statuses = _install_slot(monkeypatch, acquire_outcome="created")
    _install_apply(monkeypatch, error=NotFoundError("Commission not found"))

    outcome = asyncio.run(
        payment_webhooks.process_payment_event_async(
            event="PAYMENT_CONFIRMED",
            payment={"id": "pay_unknown"},
            charge_ref="pay_unknown",
        )
    )

    assert outcome == "dropped"
    assert statuses == ["PROCESSED"]


def test_process_payment_event_async_marks_failed_and_reraises(monkeypatch) -> None:
    statuses = _install_slot(monkeypatch, acquire_outcome="reclaimed_failed")
    _install_apply(monkeypatch, error=RuntimeError("deadlock"))

    with pytest.raises(RuntimeError):
        asyncio.run(
            payment_webhooks.process_payment_event_async(
                event="PAYMENT_CONFIRMED",
                payment={"id": "pay_000001"},
                charge_ref="pay_000001",
            )
        )

    assert statuses == ["FAILED"]


def test_process_payment_event_async_reports_stale_reclaim(monkeypatch) -> None:
    _install_slot(monkeypatch, acquire_outcome="reclaimed_stale")
    _install_apply(
        monkeypatch,
        result=WebhookApplyResult(
            commission_id=uuid4(),
            outcome=Effect.NOOP,
            status=CommissionStatus.PAID,
            event="PAYMENT_RECEIVED",
        ),
    )
    events: list[str] = []

    async def fake_emit(*, event_type, payload, status="SENT"):
        events.append(event_type)

    monkeypatch.setattr(payment_webhooks, "emit_reliability_event", fake_emit)

    outcome = asyncio.run(
        payment_webhooks.process_payment_event_async(
            event="PAYMENT_RECEIVED",
            payment={"id": "pay_000001"},
            charge_ref="pay_000001",
        )
    )

    assert outcome == "noop"
    assert events == ["payment_webhook_reclaimed"]


@pytest.mark.parametrize(
    ("created", "reclaimed_failed", "reclaimed_stale", "expected"),
    [
        (True, False, False, "created"),
        (False, True, False, "reclaimed_failed"),
        (False, False, True, "reclaimed_stale"),
        (False, False, False, "duplicate"),
    ],
)
def test_acquire_processing_slot_outcomes(
    monkeypatch,
    created: bool,
    reclaimed_failed: bool,
    reclaimed_stale: bool,
    expected: str,
) -> None:
    def _returning(value: bool):
        async def _fake(*args, **kwargs) -> bool:
            _ = (args, kwargs)
            return value

        return _fake

    repo = payment_webhooks.ProcessedPaymentEventsRepo
    monkeypatch.setattr(repo, "try_create_processing_slot", _returning(created))
    monkeypatch.setattr(repo, "try_reclaim_failed_processing_slot", _returning(reclaimed_failed))
    monkeypatch.setattr(repo, "try_reclaim_stale_processing_slot", _returning(reclaimed_stale))

    outcome = asyncio.run(
        payment_webhooks._acquire_processing_slot(
            "pay_000001",
            "PAYMENT_CONFIRMED",
            task_id="task-1",
            processing_ttl_seconds=300,
        )
    )
    assert outcome == expected
