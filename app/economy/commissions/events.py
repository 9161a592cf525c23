from __future__ import annotations

from enum import Enum


class SettlementEvent(str, Enum):
    CHARGE_CREATED = "CHARGE_CREATED"
    CHARGE_FAILED = "CHARGE_FAILED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    OPERATOR_CANCELLED = "OPERATOR_CANCELLED"
    UNRECOGNIZED = "UNRECOGNIZED"


def parse_gateway_event(kind: str | None) -> SettlementEvent:
    """Map a gateway webhook ``event`` string to the settlement event it drives."""
    normalized = (kind or "").strip().upper()
    match normalized:
        case "PAYMENT_CREATED":
            return SettlementEvent.CHARGE_CREATED
        case "PAYMENT_CONFIRMED":
            return SettlementEvent.PAYMENT_CONFIRMED
        case "PAYMENT_RECEIVED" | "PAYMENT_RECEIVED_IN_CASH":
            return SettlementEvent.PAYMENT_RECEIVED
        case "PAYMENT_OVERDUE":
            return SettlementEvent.PAYMENT_OVERDUE
        case "PAYMENT_DELETED":
            return SettlementEvent.PAYMENT_DELETED
        case "PAYMENT_REFUNDED" | "PAYMENT_PARTIALLY_REFUNDED" | "PAYMENT_CHARGEBACK_REQUESTED":
            return SettlementEvent.PAYMENT_REFUNDED
        case _:
            return SettlementEvent.UNRECOGNIZED
