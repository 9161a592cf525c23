from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.db.models.commissions import Commission
from app.db.models.franchises import Franchise
from app.db.models.transactions import Transaction
from app.db.session import SessionLocal
from app.economy.errors import InsufficientBalanceError, InvalidOperationError, ValidationError
from app.economy.gift_cards.service import GiftCardService
from app.economy.gift_cards.types import GiftCardCreateData, GiftCardTarget
from app.economy.ledger.codes import is_valid_gift_card_code
from app.economy.ledger.store import LedgerStore
from tests.integration.ledger_fixtures import (
    NOW_UTC,
    _assert_transaction_chain,
    _create_franchise_with_establishment,
    _create_gift_card_row,
    _ctx,
    _load_card_and_transactions,
)


async def _create_card(establishment_id: int, franchise_id: int, initial_value: str):
    async with SessionLocal.begin() as session:
        result = await GiftCardService.create(
            session,
            data=GiftCardCreateData(franchise_id=franchise_id, initial_value=Decimal(initial_value)),
            ctx=_ctx(establishment_id),
        )
    return result


@pytest.mark.asyncio
async def test_create_gift_card_starts_active_with_full_balance() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment()

    result = await _create_card(establishment_id, franchise_id, "100.00")

    gift_card, transactions = await _load_card_and_transactions(result.gift_card.id)
    assert gift_card.current_balance == Decimal("100.00")
    assert gift_card.initial_value == Decimal("100.00")
    assert gift_card.status == "ACTIVE"
    assert is_valid_gift_card_code(gift_card.code)
    assert result.scannable_code.startswith("data:image/png;base64,")
    assert transactions == []


@pytest.mark.asyncio
async def test_create_gift_card_rejects_establishment_outside_franchise() -> None:
    await _create_franchise_with_establishment(franchise_id=1, establishment_id=10)
    await _create_franchise_with_establishment(franchise_id=2, establishment_id=20)

    with pytest.raises(ValidationError) as exc_info:
        async with SessionLocal.begin() as session:
            await LedgerStore.create_gift_card(
                session,
                franchise_id=2,
                establishment_id=10,
                initial_value=Decimal("10.00"),
                now_utc=NOW_UTC,
            )
    assert exc_info.value.code == "E_ESTABLISHMENT_NOT_IN_FRANCHISE"


@pytest.mark.asyncio
async def test_recharge_records_transaction_and_pending_commission() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment(
        commission_rate="5.00"
    )
    created = await _create_card(establishment_id, franchise_id, "150.00")
    target = GiftCardTarget.by_code(created.gift_card.code)

    async with SessionLocal.begin() as session:
        await GiftCardService.use(
            session,
            target=target,
            amount=Decimal("50.00"),
            ctx=_ctx(establishment_id),
        )
    async with SessionLocal.begin() as session:
        recharge = await GiftCardService.recharge(
            session,
            target=target,
            amount=Decimal("50.00"),
            description="top-up",
            ctx=_ctx(establishment_id),
        )

    assert recharge.gift_card.current_balance == Decimal("150.00")
    assert recharge.transaction.type == "RECHARGE"
    assert recharge.transaction.balance_before == Decimal("100.00")
    assert recharge.transaction.balance_after == Decimal("150.00")
    assert recharge.commission.status == "PENDING"
    assert recharge.commission.amount == Decimal("2.50")
    assert recharge.commission.rate == Decimal("5.00")
    assert recharge.commission.transaction_id == recharge.transaction.id

    gift_card, transactions = await _load_card_and_transactions(created.gift_card.id)
    assert [item.type for item in transactions] == ["USAGE", "RECHARGE"]
    _assert_transaction_chain(gift_card, transactions)


@pytest.mark.asyncio
async def test_recharge_keeps_commission_rate_snapshot() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment(
        commission_rate="10.00"
    )
    gift_card_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="100.00",
        current_balance="0.00",
    )
    target = GiftCardTarget.by_id(gift_card_id)

    async with SessionLocal.begin() as session:
        first = await GiftCardService.recharge(
            session,
            target=target,
            amount=Decimal("20.00"),
            ctx=_ctx(establishment_id),
        )

    async with SessionLocal.begin() as session:
        franchise = await session.get(Franchise, franchise_id)
        assert franchise is not None
        franchise.commission_rate = Decimal("20.00")

    async with SessionLocal.begin() as session:
        second = await GiftCardService.recharge(
            session,
            target=target,
            amount=Decimal("20.00"),
            ctx=_ctx(establishment_id),
        )

    async with SessionLocal() as session:
        stored_first = await session.get(Commission, first.commission.id)
        assert stored_first is not None
        assert stored_first.rate == Decimal("10.00")
        assert stored_first.amount == Decimal("2.00")
    assert second.commission.rate == Decimal("20.00")
    assert second.commission.amount == Decimal("4.00")


@pytest.mark.asyncio
async def test_use_full_balance_marks_card_used_and_rejects_further_use() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment()
    gift_card_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="150.00",
        current_balance="150.00",
    )
    target = GiftCardTarget.by_id(gift_card_id)

    async with SessionLocal.begin() as session:
        usage = await GiftCardService.use(
            session,
            target=target,
            amount=Decimal("150.00"),
            ctx=_ctx(establishment_id),
        )
    assert usage.gift_card.current_balance == Decimal("0.00")
    assert usage.gift_card.status == "USED"

    with pytest.raises(InsufficientBalanceError) as exc_info:
        async with SessionLocal.begin() as session:
            await GiftCardService.use(
                session,
                target=target,
                amount=Decimal("0.01"),
                ctx=_ctx(establishment_id),
            )
    assert exc_info.value.available == Decimal("0.00")
    assert exc_info.value.requested == Decimal("0.01")


@pytest.mark.asyncio
async def test_overdraw_is_rejected_without_writing_a_transaction() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment()
    gift_card_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="150.00",
        current_balance="150.00",
    )

    with pytest.raises(InsufficientBalanceError):
        async with SessionLocal.begin() as session:
            await GiftCardService.use(
                session,
                target=GiftCardTarget.by_id(gift_card_id),
                amount=Decimal("200.00"),
                ctx=_ctx(establishment_id),
            )

    gift_card, transactions = await _load_card_and_transactions(gift_card_id)
    assert gift_card.current_balance == Decimal("150.00")
    assert gift_card.status == "ACTIVE"
    assert transactions == []
    async with SessionLocal() as session:
        assert await session.scalar(select(func.count()).select_from(Commission)) == 0


@pytest.mark.asyncio
async def test_operation_from_another_establishment_is_rejected() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment(
        franchise_id=1,
        establishment_id=10,
    )
    await _create_franchise_with_establishment(franchise_id=2, establishment_id=20)
    gift_card_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="50.00",
        current_balance="50.00",
    )

    with pytest.raises(InvalidOperationError) as exc_info:
        async with SessionLocal.begin() as session:
            await GiftCardService.use(
                session,
                target=GiftCardTarget.by_id(gift_card_id),
                amount=Decimal("5.00"),
                ctx=_ctx(20),
            )
    assert exc_info.value.code == "E_ESTABLISHMENT_MISMATCH"


@pytest.mark.asyncio
async def test_cancel_and_expire_are_absorbing() -> None:
    franchise_id, establishment_id = await _create_franchise_with_establishment()
    cancelled_id = await _create_gift_card_row(
        franchise_id=franchise_id,
        establishment_id=establishment_id,
        initial_value="50.00",
        current_balance="50.00",
    )

    async with SessionLocal.begin() as session:
        await GiftCardService.cancel(session, gift_card_id=cancelled_id, ctx=_ctx(establishment_id))

    with pytest.raises(InvalidOperationError) as exc_info:
        async with SessionLocal.begin() as session:
            await GiftCardService.recharge(
                session,
                target=GiftCardTarget.by_id(cancelled_id),
                amount=Decimal("1.00"),
                ctx=_ctx(establishment_id),
            )
    assert exc_info.value.code == "E_GIFT_CARD_NOT_ACTIVE"

    async with SessionLocal.begin() as session:
        expiring = await LedgerStore.create_gift_card(
            session,
            franchise_id=franchise_id,
            establishment_id=establishment_id,
            initial_value=Decimal("30.00"),
            valid_until=NOW_UTC + timedelta(hours=1),
            now_utc=NOW_UTC,
        )

    async with SessionLocal.begin() as session:
        expired_count = await LedgerStore.expire_due_gift_cards(
            session,
            now_utc=NOW_UTC + timedelta(hours=2),
            limit=100,
        )
    assert expired_count == 1

    async with SessionLocal() as session:
        stored = await LedgerStore.find_by_id(session, expiring.id)
        assert stored is not None
        assert stored.status == "EXPIRED"
        assert await session.scalar(select(func.count()).select_from(Transaction)) == 0
