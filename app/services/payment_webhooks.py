from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any


@dataclass(frozen=True, slots=True)
class PaymentWebhookEnvelope:
    event: str
    payment: dict[str, Any]
    charge_ref: str


def extract_payment_envelope(payload: object) -> PaymentWebhookEnvelope | None:
    if not isinstance(payload, dict):
        return None

    event = payload.get("event")
    payment = payload.get("payment")
    if not isinstance(event, str) or not event.strip() or not isinstance(payment, dict):
        return None

    charge_ref = payment.get("id")
    if not isinstance(charge_ref, str) or not charge_ref.strip():
        return None

    return PaymentWebhookEnvelope(event=event.strip(), payment=payment, charge_ref=charge_ref.strip())


def extract_external_reference(payment: dict[str, Any]) -> str | None:
    value = payment.get("externalReference")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_paid_at(payment: dict[str, Any]) -> datetime | None:
    for key in ("confirmedDate", "paymentDate", "clientPaymentDate"):
        raw = payment.get(key)
        if not isinstance(raw, str) or not raw:
            continue
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            try:
                parsed = datetime.combine(date.fromisoformat(raw), time.min)
            except ValueError:
                continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None
