from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models.commissions import Commission
from app.db.models.gift_cards import GiftCard
from app.db.models.transactions import Transaction
from app.db.repo.commissions_repo import CommissionsRepo
from app.db.repo.directory_repo import DirectoryRepo
from app.economy.context import OperationContext
from app.economy.errors import GiftCardPlatformError, NotFoundError, ValidationError
from app.economy.gift_cards.rules import compute_commission_amount, validate_batch_quantity
from app.economy.gift_cards.scannable import scannable_code_data_url
from app.economy.gift_cards.types import (
    BalanceSnapshot,
    EstablishmentSummary,
    GiftCardBatchError,
    GiftCardBatchResult,
    GiftCardCreateData,
    GiftCardCreateResult,
    GiftCardTarget,
    RechargeResult,
    UsageResult,
)
from app.economy.ledger.concurrency import run_serialized
from app.economy.ledger.rules import validate_operation_amount
from app.economy.ledger.store import LedgerStore
from app.economy.ledger.types import TransactionType

logger = structlog.get_logger(__name__)


def _not_found(**details: str) -> NotFoundError:
    return NotFoundError("Gift card not found", code="E_GIFT_CARD_NOT_FOUND", details=details)


class GiftCardService:
    @staticmethod
    async def _resolve_target_id(session: AsyncSession, target: GiftCardTarget) -> UUID:
        if target.gift_card_id is not None:
            return target.gift_card_id
        if target.code is None:
            raise ValidationError(
                "Exactly one of gift_card_id or code must be given",
                code="E_INVALID_TARGET",
            )

        gift_card = await LedgerStore.find_by_code(session, target.code)
        if gift_card is None:
            raise _not_found(code=target.code)
        return gift_card.id

    @staticmethod
    def _operation_metadata(ctx: OperationContext) -> dict[str, object]:
        metadata: dict[str, object] = {"establishment_id": ctx.establishment_id}
        if ctx.actor_id is not None:
            metadata["actor_id"] = ctx.actor_id
        return metadata

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        data: GiftCardCreateData,
        ctx: OperationContext,
    ) -> GiftCardCreateResult:
        gift_card = await LedgerStore.create_gift_card(
            session,
            franchise_id=data.franchise_id,
            establishment_id=ctx.establishment_id,
            initial_value=data.initial_value,
            valid_until=data.valid_until,
            now_utc=ctx.now_utc,
        )
        return GiftCardCreateResult(
            gift_card=gift_card,
            scannable_code=scannable_code_data_url(gift_card.code),
        )

    @staticmethod
    async def create_batch(
        *,
        data: GiftCardCreateData,
        quantity: int,
        ctx: OperationContext,
    ) -> GiftCardBatchResult:
        settings = get_settings()
        validate_batch_quantity(quantity, max_quantity=settings.gift_card_batch_max_quantity)

        async def _create_one(session: AsyncSession) -> GiftCardCreateResult:
            return await GiftCardService.create(session, data=data, ctx=ctx)

        result = GiftCardBatchResult(quantity=quantity)
        for index in range(quantity):
            try:
                created = await run_serialized(
                    _create_one,
                    attempts=settings.ledger_write_max_attempts,
                )
            except GiftCardPlatformError as exc:
                logger.warning(
                    "gift_card_batch_item_failed",
                    index=index,
                    error_code=exc.code,
                    establishment_id=ctx.establishment_id,
                )
                result.errors.append(GiftCardBatchError(index=index, code=exc.code, message=exc.message))
                continue
            result.created.append(created)

        logger.info(
            "gift_card_batch_created",
            establishment_id=ctx.establishment_id,
            quantity=quantity,
            created_count=result.created_count,
            error_count=len(result.errors),
        )
        return result

    @staticmethod
    async def recharge(
        session: AsyncSession,
        *,
        target: GiftCardTarget,
        amount: Decimal | str | int,
        description: str | None = None,
        ctx: OperationContext,
    ) -> RechargeResult:
        """Credit ``amount`` to the card and record the pending commission in the same transaction.

        The caller commits and then enqueues the charge job for ``result.commission``.
        """
        settings = get_settings()
        value = validate_operation_amount(amount, max_amount=settings.gift_card_max_operation_amount)
        gift_card_id = await GiftCardService._resolve_target_id(session, target)

        change = await LedgerStore.apply_balance_change(
            session,
            gift_card_id=gift_card_id,
            establishment_id=ctx.establishment_id,
            delta=value,
            transaction_type=TransactionType.RECHARGE,
            description=description,
            metadata=GiftCardService._operation_metadata(ctx),
            now_utc=ctx.now_utc,
        )

        franchise = await DirectoryRepo.get_franchise(session, change.gift_card.franchise_id)
        if franchise is None:
            raise NotFoundError(
                "Franchise not found",
                code="E_FRANCHISE_NOT_FOUND",
                details={"franchise_id": change.gift_card.franchise_id},
            )

        rate = Decimal(franchise.commission_rate)
        commission = await CommissionsRepo.create(
            session,
            commission=Commission(
                id=uuid4(),
                franchise_id=franchise.id,
                establishment_id=ctx.establishment_id,
                transaction_id=change.transaction.id,
                amount=compute_commission_amount(value, rate),
                rate=rate,
                status="PENDING",
                charge_attempts=0,
                created_at=ctx.now_utc,
                updated_at=ctx.now_utc,
            ),
        )
        logger.info(
            "gift_card_recharged",
            gift_card_id=str(change.gift_card.id),
            transaction_id=str(change.transaction.id),
            commission_id=str(commission.id),
            amount=str(value),
            commission_amount=str(commission.amount),
            rate=str(rate),
        )
        return RechargeResult(
            transaction=change.transaction,
            gift_card=change.gift_card,
            commission=commission,
        )

    @staticmethod
    async def use(
        session: AsyncSession,
        *,
        target: GiftCardTarget,
        amount: Decimal | str | int,
        description: str | None = None,
        ctx: OperationContext,
    ) -> UsageResult:
        settings = get_settings()
        value = validate_operation_amount(amount, max_amount=settings.gift_card_max_operation_amount)
        gift_card_id = await GiftCardService._resolve_target_id(session, target)

        change = await LedgerStore.apply_balance_change(
            session,
            gift_card_id=gift_card_id,
            establishment_id=ctx.establishment_id,
            delta=-value,
            transaction_type=TransactionType.USAGE,
            description=description,
            metadata=GiftCardService._operation_metadata(ctx),
            now_utc=ctx.now_utc,
        )
        logger.info(
            "gift_card_used",
            gift_card_id=str(change.gift_card.id),
            transaction_id=str(change.transaction.id),
            amount=str(value),
            balance_after=str(change.transaction.balance_after),
            status=change.gift_card.status,
        )
        return UsageResult(transaction=change.transaction, gift_card=change.gift_card)

    @staticmethod
    async def get_balance(session: AsyncSession, code: str) -> BalanceSnapshot:
        gift_card = await LedgerStore.find_by_code(session, code)
        if gift_card is None:
            raise _not_found(code=code)

        establishment = await DirectoryRepo.get_establishment(session, gift_card.establishment_id)
        if establishment is None:
            raise _not_found(code=code)

        return BalanceSnapshot(
            code=gift_card.code,
            current_balance=gift_card.current_balance,
            initial_value=gift_card.initial_value,
            status=gift_card.status,
            valid_until=gift_card.valid_until,
            establishment=EstablishmentSummary(
                name=establishment.name,
                category=establishment.category,
            ),
        )

    @staticmethod
    async def get_owned(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        ctx: OperationContext,
    ) -> GiftCard:
        gift_card = await LedgerStore.find_by_id(session, gift_card_id)
        if gift_card is None or gift_card.establishment_id != ctx.establishment_id:
            raise _not_found(gift_card_id=str(gift_card_id))
        return gift_card

    @staticmethod
    async def list_transactions(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        ctx: OperationContext,
    ) -> list[Transaction]:
        await GiftCardService.get_owned(session, gift_card_id=gift_card_id, ctx=ctx)
        return await LedgerStore.list_transactions(session, gift_card_id)

    @staticmethod
    async def cancel(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        ctx: OperationContext,
    ) -> GiftCard:
        await GiftCardService.get_owned(session, gift_card_id=gift_card_id, ctx=ctx)
        return await LedgerStore.cancel_gift_card(
            session,
            gift_card_id=gift_card_id,
            now_utc=ctx.now_utc,
        )
