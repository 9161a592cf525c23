from __future__ import annotations

from dataclasses import dataclass

from app.economy.commissions.events import SettlementEvent
from app.economy.commissions.types import CommissionStatus, Effect, FailureReason


@dataclass(frozen=True, slots=True)
class Transition:
    effect: Effect
    next_status: CommissionStatus
    failure_reason: FailureReason | None = None
    flagged: bool = False


def _apply(
    next_status: CommissionStatus,
    failure_reason: FailureReason | None = None,
) -> Transition:
    return Transition(effect=Effect.APPLY, next_status=next_status, failure_reason=failure_reason)


def _noop(status: CommissionStatus, *, flagged: bool = False) -> Transition:
    return Transition(effect=Effect.NOOP, next_status=status, flagged=flagged)


def _reject(status: CommissionStatus) -> Transition:
    return Transition(effect=Effect.REJECT, next_status=status)


_PENDING = CommissionStatus.PENDING
_CHARGED = CommissionStatus.CHARGED
_PAID = CommissionStatus.PAID
_FAILED = CommissionStatus.FAILED

TRANSITIONS: dict[tuple[CommissionStatus, SettlementEvent], Transition] = {
    (_PENDING, SettlementEvent.CHARGE_CREATED): _apply(_CHARGED),
    (_PENDING, SettlementEvent.CHARGE_FAILED): _apply(_FAILED, FailureReason.GATEWAY_ERROR),
    (_PENDING, SettlementEvent.PAYMENT_CONFIRMED): _noop(_PENDING),
    (_PENDING, SettlementEvent.PAYMENT_RECEIVED): _noop(_PENDING),
    (_PENDING, SettlementEvent.PAYMENT_OVERDUE): _noop(_PENDING),
    (_PENDING, SettlementEvent.PAYMENT_DELETED): _apply(_FAILED, FailureReason.PAYMENT_DELETED),
    (_PENDING, SettlementEvent.PAYMENT_REFUNDED): _apply(_FAILED, FailureReason.PAYMENT_REFUNDED),
    (_PENDING, SettlementEvent.OPERATOR_CANCELLED): _apply(_FAILED, FailureReason.OPERATOR_CANCELLED),
    (_PENDING, SettlementEvent.UNRECOGNIZED): _noop(_PENDING),
    (_CHARGED, SettlementEvent.CHARGE_CREATED): _reject(_CHARGED),
    (_CHARGED, SettlementEvent.CHARGE_FAILED): _apply(_FAILED, FailureReason.GATEWAY_ERROR),
    (_CHARGED, SettlementEvent.PAYMENT_CONFIRMED): _apply(_PAID),
    (_CHARGED, SettlementEvent.PAYMENT_RECEIVED): _apply(_PAID),
    (_CHARGED, SettlementEvent.PAYMENT_OVERDUE): _noop(_CHARGED, flagged=True),
    (_CHARGED, SettlementEvent.PAYMENT_DELETED): _apply(_FAILED, FailureReason.PAYMENT_DELETED),
    (_CHARGED, SettlementEvent.PAYMENT_REFUNDED): _apply(_FAILED, FailureReason.PAYMENT_REFUNDED),
    (_CHARGED, SettlementEvent.OPERATOR_CANCELLED): _apply(_FAILED, FailureReason.OPERATOR_CANCELLED),
    (_CHARGED, SettlementEvent.UNRECOGNIZED): _noop(_CHARGED),
    (_PAID, SettlementEvent.CHARGE_CREATED): _reject(_PAID),
    (_PAID, SettlementEvent.CHARGE_FAILED): _reject(_PAID),
    (_PAID, SettlementEvent.PAYMENT_CONFIRMED): _noop(_PAID),
    (_PAID, SettlementEvent.PAYMENT_RECEIVED): _noop(_PAID),
    (_PAID, SettlementEvent.PAYMENT_OVERDUE): _noop(_PAID),
    (_PAID, SettlementEvent.PAYMENT_DELETED): _noop(_PAID, flagged=True),
    (_PAID, SettlementEvent.PAYMENT_REFUNDED): _noop(_PAID, flagged=True),
    (_PAID, SettlementEvent.OPERATOR_CANCELLED): _reject(_PAID),
    (_PAID, SettlementEvent.UNRECOGNIZED): _noop(_PAID),
    (_FAILED, SettlementEvent.CHARGE_CREATED): _apply(_CHARGED),
    (_FAILED, SettlementEvent.CHARGE_FAILED): _noop(_FAILED),
    (_FAILED, SettlementEvent.PAYMENT_CONFIRMED): _noop(_FAILED),
    (_FAILED, SettlementEvent.PAYMENT_RECEIVED): _noop(_FAILED),
    (_FAILED, SettlementEvent.PAYMENT_OVERDUE): _noop(_FAILED),
    (_FAILED, SettlementEvent.PAYMENT_DELETED): _noop(_FAILED),
    (_FAILED, SettlementEvent.PAYMENT_REFUNDED): _noop(_FAILED),
    (_FAILED, SettlementEvent.OPERATOR_CANCELLED): _noop(_FAILED),
    (_FAILED, SettlementEvent.UNRECOGNIZED): _noop(_FAILED),
}


def transition_for(status: CommissionStatus, event: SettlementEvent) -> Transition:
    return TRANSITIONS[(status, event)]

# Gateway notifications never open a charge; only request_charge moves FAILED to CHARGED.
WEBHOOK_OVERRIDES: dict[tuple[CommissionStatus, SettlementEvent], Transition] = {
    (_FAILED, SettlementEvent.CHARGE_CREATED): _noop(_FAILED, flagged=True),
    (_CHARGED, SettlementEvent.CHARGE_CREATED): _noop(_CHARGED),
}


def webhook_transition_for(status: CommissionStatus, event: SettlementEvent) -> Transition:
    override = WEBHOOK_OVERRIDES.get((status, event))
    if override is not None:
        return override
    return transition_for(status, event)
