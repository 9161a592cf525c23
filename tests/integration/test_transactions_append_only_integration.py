from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import delete, text, update
from sqlalchemy.exc import DBAPIError

from app.db.models.transactions import Transaction
from app.db.session import SessionLocal
from app.economy.gift_cards.service import GiftCardService
from app.economy.gift_cards.types import GiftCardTarget
from tests.integration.ledger_fixtures import (
    _create_franchise_with_establishment,
    _create_gift_card_row,
    _ctx,
    _load_card_and_transactions,
)


async def _card_with_one_usage():
    franchise_id, establishment_id = await _create_franchise_with_establishment()
    gift_card_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="40.00",
        current_balance="40.00",
    )
    async with SessionLocal.begin() as session:
        usage = await GiftCardService.use(
            session,
            target=GiftCardTarget.by_id(gift_card_id),
            amount=Decimal("15.00"),
            ctx=_ctx(establishment_id),
        )
    return gift_card_id, usage.transaction.id


@pytest.mark.asyncio
async def test_database_rejects_transaction_update() -> None:
    gift_card_id, transaction_id = await _card_with_one_usage()

    with pytest.raises(DBAPIError, match="append-only"):
        async with SessionLocal.begin() as session:
            await session.execute(
                update(Transaction)
                .where(Transaction.id == transaction_id)
                .values(description="rewritten")
            )

    _, transactions = await _load_card_and_transactions(gift_card_id)
    assert [item.description for item in transactions] == [None]


@pytest.mark.asyncio
async def test_database_rejects_transaction_delete() -> None:
    gift_card_id, transaction_id = await _card_with_one_usage()

    with pytest.raises(DBAPIError, match="append-only"):
        async with SessionLocal.begin() as session:
            await session.execute(delete(Transaction).where(Transaction.id == transaction_id))

    with pytest.raises(DBAPIError, match="append-only"):
        async with SessionLocal.begin() as session:
            await session.execute(
                text("DELETE FROM transactions WHERE gift_card_id = :gift_card_id"),
                {"gift_card_id": gift_card_id},
            )

    _, transactions = await _load_card_and_transactions(gift_card_id)
    assert len(transactions) == 1


@pytest.mark.asyncio
async def test_orm_rejects_loaded_transaction_mutation() -> None:
    _, transaction_id = await _card_with_one_usage()

    with pytest.raises(ValueError, match="append-only"):
        async with SessionLocal.begin() as session:
            transaction = await session.get(Transaction, transaction_id)
            assert transaction is not None
            transaction.amount = Decimal("1.00")
            await session.flush()
