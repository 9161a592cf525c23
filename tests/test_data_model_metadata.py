from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Session, make_transient_to_detached

from app.db.models import (  # noqa: F401
    Commission,
    Establishment,
    Franchise,
    GatewayCustomer,
    GiftCard,
    OutboxEvent,
    ProcessedPaymentEvent,
    Transaction,
)
from app.db.models.base import Base


def _constraint_names(table_name: str, constraint_type: type) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {
        constraint.name
        for constraint in table.constraints
        if isinstance(constraint, constraint_type) and constraint.name
    }


def test_all_ledger_tables_registered() -> None:
    expected_tables = {
        "franchises",
        "establishments",
        "gateway_customers",
        "gift_cards",
        "transactions",
        "commissions",
        "processed_payment_events",
        "outbox_events",
    }
    assert expected_tables.issubset(set(Base.metadata.tables))


def test_gift_card_balance_bounds_are_enforced_in_schema() -> None:
    names = _constraint_names("gift_cards", CheckConstraint)
    assert "ck_gift_cards_balance_bounds" in names
    assert "ck_gift_cards_initial_value_positive" in names
    assert "ck_gift_cards_status" in names
    assert Base.metadata.tables["gift_cards"].c.code.unique is True


def test_transaction_chain_constraints_exist() -> None:
    assert "uq_transactions_gift_card_sequence" in _constraint_names(
        "transactions",
        UniqueConstraint,
    )
    assert "ck_transactions_balance_arithmetic" in _constraint_names(
        "transactions",
        CheckConstraint,
    )


def test_commission_constraints_exist() -> None:
    names = _constraint_names("commissions", CheckConstraint)
    assert "ck_commissions_status" in names
    assert "ck_commissions_paid_at_consistency" in names
    table = Base.metadata.tables["commissions"]
    assert table.c.transaction_id.unique is True
    assert table.c.charge_ref.unique is True


def test_processed_payment_events_are_keyed_by_charge_and_event_kind() -> None:
    primary_key = Base.metadata.tables["processed_payment_events"].primary_key
    assert [column.name for column in primary_key.columns] == ["charge_ref", "event_kind"]


def test_transactions_reject_in_place_updates() -> None:
    now_utc = datetime(2026, 3, 1, tzinfo=timezone.utc)
    transaction = Transaction(
        id=uuid4(),
        gift_card_id=uuid4(),
        establishment_id=1,
        sequence=1,
        type="USAGE",
        amount=Decimal("10.00"),
        balance_before=Decimal("50.00"),
        balance_after=Decimal("40.00"),
        description=None,
        metadata_={},
        created_at=now_utc,
    )
    make_transient_to_detached(transaction)

    session = Session()
    session.add(transaction)
    transaction.amount = Decimal("1.00")

    with pytest.raises(ValueError, match="transactions is append-only"):
        session.flush()
