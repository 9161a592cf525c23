from __future__ import annotations

from datetime import datetime, timezone

from app.services.payment_webhooks import (
    extract_external_reference,
    extract_paid_at,
    extract_payment_envelope,
)


def test_extract_payment_envelope_requires_event_and_charge_id() -> None:
    envelope = extract_payment_envelope(
        {"event": " PAYMENT_CONFIRMED ", "payment": {"id": "pay_000001", "value": 5.0}}
    )

    assert envelope is not None
    assert envelope.event == "PAYMENT_CONFIRMED"
    assert envelope.charge_ref == "pay_000001"
    assert envelope.payment["value"] == 5.0


def test_extract_payment_envelope_rejects_malformed_payloads() -> None:
    assert extract_payment_envelope(None) is None
    assert extract_payment_envelope([]) is None
    assert extract_payment_envelope({"payment": {"id": "pay_1"}}) is None
    assert extract_payment_envelope({"event": "PAYMENT_CONFIRMED"}) is None
    assert extract_payment_envelope({"event": "PAYMENT_CONFIRMED", "payment": {}}) is None
    assert extract_payment_envelope({"event": "", "payment": {"id": "pay_1"}}) is None


def test_extract_external_reference() -> None:
    assert extract_external_reference({"externalReference": " abc "}) == "abc"
    assert extract_external_reference({"externalReference": ""}) is None
    assert extract_external_reference({}) is None


def test_extract_paid_at_prefers_confirmed_date() -> None:
    paid_at = extract_paid_at(
        {"confirmedDate": "2026-03-02", "paymentDate": "2026-03-05"}
    )
    assert paid_at == datetime(2026, 3, 2, tzinfo=timezone.utc)


def test_extract_paid_at_keeps_explicit_offset() -> None:
    paid_at = extract_paid_at({"paymentDate": "2026-03-02T10:15:00-03:00"})
    assert paid_at == datetime(2026, 3, 2, 13, 15, tzinfo=timezone.utc)


def test_extract_paid_at_skips_unparseable_values() -> None:
    assert extract_paid_at({"confirmedDate": "yesterday"}) is None
    assert extract_paid_at({"confirmedDate": "bad", "clientPaymentDate": "2026-03-03"}) == datetime(
        2026, 3, 3, tzinfo=timezone.utc
    )
    assert extract_paid_at({}) is None
