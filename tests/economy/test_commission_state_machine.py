from __future__ import annotations

import itertools

import pytest

from app.economy.commissions.events import SettlementEvent, parse_gateway_event
from app.economy.commissions.state_machine import (
    TRANSITIONS,
    transition_for,
    webhook_transition_for,
)
from app.economy.commissions.types import CommissionStatus, Effect, FailureReason


def test_transition_table_covers_every_status_and_event() -> None:
    expected = set(itertools.product(CommissionStatus, SettlementEvent))
    assert set(TRANSITIONS) == expected


@pytest.mark.parametrize(
    ("status", "event", "next_status"),
    [
        (CommissionStatus.PENDING, SettlementEvent.CHARGE_CREATED, CommissionStatus.CHARGED),
        (CommissionStatus.PENDING, SettlementEvent.CHARGE_FAILED, CommissionStatus.FAILED),
        (CommissionStatus.CHARGED, SettlementEvent.PAYMENT_CONFIRMED, CommissionStatus.PAID),
        (CommissionStatus.CHARGED, SettlementEvent.PAYMENT_RECEIVED, CommissionStatus.PAID),
        (CommissionStatus.CHARGED, SettlementEvent.PAYMENT_DELETED, CommissionStatus.FAILED),
        (CommissionStatus.CHARGED, SettlementEvent.PAYMENT_REFUNDED, CommissionStatus.FAILED),
        (CommissionStatus.FAILED, SettlementEvent.CHARGE_CREATED, CommissionStatus.CHARGED),
    ],
)
def test_applied_transitions(
    status: CommissionStatus,
    event: SettlementEvent,
    next_status: CommissionStatus,
) -> None:
    transition = transition_for(status, event)
    assert transition.effect is Effect.APPLY
    assert transition.next_status is next_status


def test_failed_transitions_carry_failure_reason() -> None:
    assert (
        transition_for(CommissionStatus.CHARGED, SettlementEvent.PAYMENT_DELETED).failure_reason
        is FailureReason.PAYMENT_DELETED
    )
    assert (
        transition_for(CommissionStatus.CHARGED, SettlementEvent.PAYMENT_REFUNDED).failure_reason
        is FailureReason.PAYMENT_REFUNDED
    )
    assert (
        transition_for(CommissionStatus.PENDING, SettlementEvent.CHARGE_FAILED).failure_reason
        is FailureReason.GATEWAY_ERROR
    )


def test_paid_is_terminal_for_state_changes() -> None:
    for event in SettlementEvent:
        transition = transition_for(CommissionStatus.PAID, event)
        assert transition.next_status is CommissionStatus.PAID
        assert transition.effect is not Effect.APPLY


def test_paid_after_refund_or_delete_is_flagged_noop() -> None:
    for event in (SettlementEvent.PAYMENT_DELETED, SettlementEvent.PAYMENT_REFUNDED):
        transition = transition_for(CommissionStatus.PAID, event)
        assert transition.effect is Effect.NOOP
        assert transition.flagged is True


def test_overdue_charge_stays_charged_and_is_flagged() -> None:
    transition = transition_for(CommissionStatus.CHARGED, SettlementEvent.PAYMENT_OVERDUE)
    assert transition.effect is Effect.NOOP
    assert transition.next_status is CommissionStatus.CHARGED
    assert transition.flagged is True


def test_second_charge_on_charged_or_paid_is_rejected() -> None:
    for status in (CommissionStatus.CHARGED, CommissionStatus.PAID):
        assert transition_for(status, SettlementEvent.CHARGE_CREATED).effect is Effect.REJECT


def test_operator_cannot_cancel_paid_commission() -> None:
    assert (
        transition_for(CommissionStatus.PAID, SettlementEvent.OPERATOR_CANCELLED).effect
        is Effect.REJECT
    )
    assert (
        transition_for(CommissionStatus.PENDING, SettlementEvent.OPERATOR_CANCELLED).next_status
        is CommissionStatus.FAILED
    )


def test_unrecognized_events_never_change_state() -> None:
    for status in CommissionStatus:
        transition = transition_for(status, SettlementEvent.UNRECOGNIZED)
        assert transition.effect is Effect.NOOP
        assert transition.next_status is status


def test_noop_and_reject_transitions_keep_status() -> None:
    for (status, _event), transition in TRANSITIONS.items():
        if transition.effect is not Effect.APPLY:
            assert transition.next_status is status


def test_gateway_charge_notice_never_revives_failed_commission() -> None:
    transition = webhook_transition_for(CommissionStatus.FAILED, SettlementEvent.CHARGE_CREATED)
    assert transition.effect is Effect.NOOP
    assert transition.next_status is CommissionStatus.FAILED
    assert transition.flagged is True


def test_gateway_charge_notice_on_charged_commission_is_noop() -> None:
    transition = webhook_transition_for(CommissionStatus.CHARGED, SettlementEvent.CHARGE_CREATED)
    assert transition.effect is Effect.NOOP
    assert transition.next_status is CommissionStatus.CHARGED


def test_webhook_transitions_match_table_outside_charge_notices() -> None:
    for (status, event), transition in TRANSITIONS.items():
        if event is SettlementEvent.CHARGE_CREATED and status in (
            CommissionStatus.FAILED,
            CommissionStatus.CHARGED,
        ):
            continue
        assert webhook_transition_for(status, event) is transition


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        ("PAYMENT_CREATED", SettlementEvent.CHARGE_CREATED),
        ("PAYMENT_CONFIRMED", SettlementEvent.PAYMENT_CONFIRMED),
        ("PAYMENT_RECEIVED", SettlementEvent.PAYMENT_RECEIVED),
        ("PAYMENT_RECEIVED_IN_CASH", SettlementEvent.PAYMENT_RECEIVED),
        ("PAYMENT_OVERDUE", SettlementEvent.PAYMENT_OVERDUE),
        ("PAYMENT_DELETED", SettlementEvent.PAYMENT_DELETED),
        ("PAYMENT_REFUNDED", SettlementEvent.PAYMENT_REFUNDED),
        ("PAYMENT_PARTIALLY_REFUNDED", SettlementEvent.PAYMENT_REFUNDED),
        ("PAYMENT_CHARGEBACK_REQUESTED", SettlementEvent.PAYMENT_REFUNDED),
        (" payment_confirmed ", SettlementEvent.PAYMENT_CONFIRMED),
        ("PAYMENT_AWAITING_RISK_ANALYSIS", SettlementEvent.UNRECOGNIZED),
        ("", SettlementEvent.UNRECOGNIZED),
        (None, SettlementEvent.UNRECOGNIZED),
    ],
)
def test_parse_gateway_event(kind: str | None, expected: SettlementEvent) -> None:
    assert parse_gateway_event(kind) is expected
