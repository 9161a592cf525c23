from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.gift_cards import GiftCard
from app.db.models.transactions import Transaction
from app.db.repo.directory_repo import DirectoryRepo
from app.db.repo.gift_cards_repo import GiftCardsRepo
from app.db.repo.transactions_repo import TransactionsRepo
from app.economy.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from app.economy.ledger.codes import generate_gift_card_code
from app.economy.ledger.rules import compute_balance_change, validate_operation_amount
from app.economy.ledger.types import (
    TERMINAL_GIFT_CARD_STATUSES,
    BalanceChangeResult,
    GiftCardSnapshot,
    GiftCardStatus,
    TransactionType,
)

logger = structlog.get_logger(__name__)


class LedgerStore:
    @staticmethod
    def _snapshot_from_model(gift_card: GiftCard) -> GiftCardSnapshot:
        return GiftCardSnapshot(
            initial_value=gift_card.initial_value,
            current_balance=gift_card.current_balance,
            status=GiftCardStatus(gift_card.status),
            valid_until=gift_card.valid_until,
            last_sequence=gift_card.last_sequence,
        )

    @staticmethod
    async def _insert_with_fresh_code(
        session: AsyncSession,
        *,
        franchise_id: int,
        establishment_id: int,
        initial_value: Decimal,
        valid_until: datetime | None,
        now_utc: datetime,
        max_attempts: int,
    ) -> GiftCard:
        for attempt in range(1, max_attempts + 1):
            code = generate_gift_card_code()
            if await GiftCardsRepo.code_exists(session, code):
                logger.warning("gift_card_code_collision", attempt=attempt, source="precheck")
                continue

            gift_card = GiftCard(
                id=uuid4(),
                code=code,
                franchise_id=franchise_id,
                establishment_id=establishment_id,
                initial_value=initial_value,
                current_balance=initial_value,
                status=GiftCardStatus.ACTIVE.value,
                valid_until=valid_until,
                last_sequence=0,
                created_at=now_utc,
                updated_at=now_utc,
            )
            try:
                async with session.begin_nested():
                    await GiftCardsRepo.create(session, gift_card=gift_card)
            except IntegrityError:
                if not await GiftCardsRepo.code_exists(session, code):
                    raise
                logger.warning("gift_card_code_collision", attempt=attempt, source="unique_index")
                continue
            return gift_card

        raise ConflictError(
            "Could not generate a unique gift card code",
            code="E_CODE_GENERATION_EXHAUSTED",
            details={"attempts": max_attempts},
        )

    @staticmethod
    async def create_gift_card(
        session: AsyncSession,
        *,
        franchise_id: int,
        establishment_id: int,
        initial_value: Decimal | str | int,
        valid_until: datetime | None = None,
        now_utc: datetime,
    ) -> GiftCard:
        settings = get_settings()
        value = validate_operation_amount(
            initial_value,
            max_amount=settings.gift_card_max_operation_amount,
        )
        if valid_until is not None and valid_until <= now_utc:
            raise ValidationError("valid_until must be in the future", code="E_INVALID_VALID_UNTIL")

        franchise = await DirectoryRepo.get_franchise(session, franchise_id)
        if franchise is None:
            raise ValidationError(
                "Franchise does not exist",
                code="E_FRANCHISE_NOT_FOUND",
                details={"franchise_id": franchise_id},
            )
        establishment = await DirectoryRepo.get_establishment(session, establishment_id)
        if establishment is None:
            raise ValidationError(
                "Establishment does not exist",
                code="E_ESTABLISHMENT_NOT_FOUND",
                details={"establishment_id": establishment_id},
            )
        if establishment.franchise_id != franchise.id:
            raise ValidationError(
                "Establishment does not belong to the franchise",
                code="E_ESTABLISHMENT_NOT_IN_FRANCHISE",
                details={"franchise_id": franchise_id, "establishment_id": establishment_id},
            )

        gift_card = await LedgerStore._insert_with_fresh_code(
            session,
            franchise_id=franchise_id,
            establishment_id=establishment_id,
            initial_value=value,
            valid_until=valid_until,
            now_utc=now_utc,
            max_attempts=max(1, settings.gift_card_code_max_attempts),
        )
        logger.info(
            "gift_card_created",
            gift_card_id=str(gift_card.id),
            franchise_id=franchise_id,
            establishment_id=establishment_id,
            initial_value=str(value),
        )
        return gift_card

    @staticmethod
    async def apply_balance_change(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        establishment_id: int,
        delta: Decimal,
        transaction_type: TransactionType,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        now_utc: datetime,
    ) -> BalanceChangeResult:
        gift_card = await GiftCardsRepo.get_by_id_for_update(session, gift_card_id)
        if gift_card is None:
            raise NotFoundError(
                "Gift card not found",
                code="E_GIFT_CARD_NOT_FOUND",
                details={"gift_card_id": str(gift_card_id)},
            )
        if gift_card.establishment_id != establishment_id:
            raise InvalidOperationError(
                "Gift card belongs to another establishment",
                code="E_ESTABLISHMENT_MISMATCH",
                details={"gift_card_id": str(gift_card_id)},
            )

        change = compute_balance_change(
            LedgerStore._snapshot_from_model(gift_card),
            delta=delta,
            transaction_type=transaction_type,
            now_utc=now_utc,
        )

        gift_card.current_balance = change.balance_after
        gift_card.status = change.status_after.value
        gift_card.last_sequence = change.sequence
        gift_card.updated_at = now_utc

        transaction = await TransactionsRepo.create(
            session,
            transaction=Transaction(
                id=uuid4(),
                gift_card_id=gift_card.id,
                establishment_id=establishment_id,
                sequence=change.sequence,
                type=change.transaction_type.value,
                amount=change.amount,
                balance_before=change.balance_before,
                balance_after=change.balance_after,
                description=description,
                metadata_=dict(metadata or {}),
                created_at=now_utc,
            ),
        )
        logger.info(
            "gift_card_balance_changed",
            gift_card_id=str(gift_card.id),
            transaction_id=str(transaction.id),
            transaction_type=change.transaction_type.value,
            amount=str(change.amount),
            balance_before=str(change.balance_before),
            balance_after=str(change.balance_after),
            sequence=change.sequence,
            status=change.status_after.value,
        )
        return BalanceChangeResult(gift_card=gift_card, transaction=transaction)

    @staticmethod
    async def find_by_code(session: AsyncSession, code: str) -> GiftCard | None:
        return await GiftCardsRepo.get_by_code(session, code)

    @staticmethod
    async def find_by_id(session: AsyncSession, gift_card_id: UUID) -> GiftCard | None:
        return await GiftCardsRepo.get_by_id(session, gift_card_id)

    @staticmethod
    async def list_transactions(session: AsyncSession, gift_card_id: UUID) -> list[Transaction]:
        return await TransactionsRepo.list_for_gift_card(session, gift_card_id=gift_card_id)

    @staticmethod
    async def cancel_gift_card(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        now_utc: datetime,
    ) -> GiftCard:
        gift_card = await GiftCardsRepo.get_by_id_for_update(session, gift_card_id)
        if gift_card is None:
            raise NotFoundError(
                "Gift card not found",
                code="E_GIFT_CARD_NOT_FOUND",
                details={"gift_card_id": str(gift_card_id)},
            )
        status = GiftCardStatus(gift_card.status)
        if status in TERMINAL_GIFT_CARD_STATUSES:
            raise InvalidOperationError(
                f"Gift card is {status.value}",
                code="E_GIFT_CARD_NOT_ACTIVE",
                details={"status": status.value},
            )

        gift_card.status = GiftCardStatus.CANCELLED.value
        gift_card.updated_at = now_utc
        await session.flush()
        logger.info("gift_card_cancelled", gift_card_id=str(gift_card.id))
        return gift_card

    @staticmethod
    async def expire_due_gift_cards(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> int:
        return await GiftCardsRepo.expire_due(session, now_utc=now_utc, limit=limit)
