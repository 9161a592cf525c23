from __future__ import annotations

import asyncio
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.context import require_operation_context
from app.api.routes.gift_cards_models import (
    BalanceOperationRequest,
    BalanceResponse,
    GiftCardBatchRequest,
    GiftCardBatchResponse,
    GiftCardCreateRequest,
    GiftCardCreateResponse,
    GiftCardResponse,
    RechargeResponse,
    TransactionResponse,
    UsageResponse,
)
from app.core.config import get_settings
from app.db.session import SessionLocal
from app.economy.context import OperationContext
from app.economy.gift_cards.service import GiftCardService
from app.economy.gift_cards.types import (
    GiftCardCreateData,
    GiftCardCreateResult,
    GiftCardTarget,
    RechargeResult,
    UsageResult,
)
from app.economy.ledger.concurrency import run_serialized
from app.workers.tasks.commission_charges import enqueue_commission_charge

router = APIRouter(prefix="/api/v1/gift-cards", tags=["gift-cards"])
logger = structlog.get_logger(__name__)


@router.post("", response_model=GiftCardCreateResponse, status_code=201)
async def create_gift_card(
    body: GiftCardCreateRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> GiftCardCreateResponse:
    data = GiftCardCreateData(
        franchise_id=body.franchise_id,
        initial_value=body.initial_value,
        valid_until=body.valid_until,
    )

    async def _create(session: AsyncSession) -> GiftCardCreateResult:
        return await GiftCardService.create(session, data=data, ctx=ctx)

    result = await run_serialized(_create, attempts=get_settings().ledger_write_max_attempts)
    return GiftCardCreateResponse.from_result(result)


@router.post("/batch", response_model=GiftCardBatchResponse, status_code=201)
async def create_gift_card_batch(
    body: GiftCardBatchRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> GiftCardBatchResponse:
    result = await GiftCardService.create_batch(
        data=GiftCardCreateData(
            franchise_id=body.franchise_id,
            initial_value=body.initial_value,
            valid_until=body.valid_until,
        ),
        quantity=body.quantity,
        ctx=ctx,
    )
    return GiftCardBatchResponse.from_result(result)


@router.get("/balance/{code}", response_model=BalanceResponse)
async def get_gift_card_balance(code: str) -> BalanceResponse:
    async with SessionLocal() as session:
        snapshot = await GiftCardService.get_balance(session, code)
    return BalanceResponse.from_snapshot(snapshot)


@router.get("/{gift_card_id}", response_model=GiftCardResponse)
async def get_gift_card(
    gift_card_id: UUID,
    ctx: OperationContext = Depends(require_operation_context),
) -> GiftCardResponse:
    async with SessionLocal() as session:
        gift_card = await GiftCardService.get_owned(session, gift_card_id=gift_card_id, ctx=ctx)
    return GiftCardResponse.model_validate(gift_card)


@router.get("/{gift_card_id}/transactions", response_model=list[TransactionResponse])
async def list_gift_card_transactions(
    gift_card_id: UUID,
    ctx: OperationContext = Depends(require_operation_context),
) -> list[TransactionResponse]:
    async with SessionLocal() as session:
        transactions = await GiftCardService.list_transactions(
            session,
            gift_card_id=gift_card_id,
            ctx=ctx,
        )
    return [TransactionResponse.model_validate(item) for item in transactions]


async def _recharge(
    target: GiftCardTarget,
    body: BalanceOperationRequest,
    ctx: OperationContext,
) -> RechargeResponse:
    async def _apply(session: AsyncSession) -> RechargeResult:
        return await GiftCardService.recharge(
            session,
            target=target,
            amount=body.amount,
            description=body.description,
            ctx=ctx,
        )

    result = await run_serialized(_apply, attempts=get_settings().ledger_write_max_attempts)
    enqueued = await asyncio.to_thread(enqueue_commission_charge, result.commission.id)
    if not enqueued:
        logger.warning("commission_charge_left_for_sweep", commission_id=str(result.commission.id))
    return RechargeResponse.from_result(result)


async def _use(
    target: GiftCardTarget,
    body: BalanceOperationRequest,
    ctx: OperationContext,
) -> UsageResponse:
    async def _apply(session: AsyncSession) -> UsageResult:
        return await GiftCardService.use(
            session,
            target=target,
            amount=body.amount,
            description=body.description,
            ctx=ctx,
        )

    result = await run_serialized(_apply, attempts=get_settings().ledger_write_max_attempts)
    return UsageResponse.from_result(result)


@router.post("/{gift_card_id}/recharge", response_model=RechargeResponse)
async def recharge_gift_card(
    gift_card_id: UUID,
    body: BalanceOperationRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> RechargeResponse:
    return await _recharge(GiftCardTarget.by_id(gift_card_id), body, ctx)


@router.post("/code/{code}/recharge", response_model=RechargeResponse)
async def recharge_gift_card_by_code(
    code: str,
    body: BalanceOperationRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> RechargeResponse:
    return await _recharge(GiftCardTarget.by_code(code), body, ctx)


@router.post("/{gift_card_id}/use", response_model=UsageResponse)
async def use_gift_card(
    gift_card_id: UUID,
    body: BalanceOperationRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> UsageResponse:
    return await _use(GiftCardTarget.by_id(gift_card_id), body, ctx)


@router.post("/code/{code}/use", response_model=UsageResponse)
async def use_gift_card_by_code(
    code: str,
    body: BalanceOperationRequest,
    ctx: OperationContext = Depends(require_operation_context),
) -> UsageResponse:
    return await _use(GiftCardTarget.by_code(code), body, ctx)


@router.post("/{gift_card_id}/cancel", response_model=GiftCardResponse)
async def cancel_gift_card(
    gift_card_id: UUID,
    ctx: OperationContext = Depends(require_operation_context),
) -> GiftCardResponse:
    async def _cancel(session: AsyncSession):
        return await GiftCardService.cancel(session, gift_card_id=gift_card_id, ctx=ctx)

    gift_card = await run_serialized(_cancel, attempts=get_settings().ledger_write_max_attempts)
    return GiftCardResponse.model_validate(gift_card)
