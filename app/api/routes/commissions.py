from __future__ import annotations

from datetime import date, timedelta
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.context import require_operation_context
from app.api.routes.gift_cards_models import CommissionResponse
from app.core.config import get_settings
from app.db.models.commissions import Commission
from app.db.session import SessionLocal
from app.economy.commissions.service import CommissionSettlementService
from app.economy.commissions.types import ChargeRequestResult, PaymentMethod
from app.economy.context import OperationContext
from app.economy.ledger.concurrency import run_serialized
from app.workers.tasks.commission_charges import build_payment_gateway

router = APIRouter(prefix="/api/v1/commissions", tags=["commissions"])
logger = structlog.get_logger(__name__)


class ChargeRequestBody(BaseModel):
    payment_method: PaymentMethod | None = None
    due_date: date | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ChargeResponse(BaseModel):
    commission: CommissionResponse
    payment: dict[str, Any]


@router.get("/{commission_id}", response_model=CommissionResponse)
async def get_commission(
    commission_id: UUID,
    ctx: OperationContext = Depends(require_operation_context),
) -> CommissionResponse:
    async with SessionLocal() as session:
        commission = await CommissionSettlementService.get_for_establishment(
            session,
            commission_id=commission_id,
            establishment_id=ctx.establishment_id,
        )
    return CommissionResponse.model_validate(commission)


@router.post("/{commission_id}/charge", response_model=ChargeResponse)
async def charge_commission(
    commission_id: UUID,
    body: ChargeRequestBody,
    ctx: OperationContext = Depends(require_operation_context),
) -> ChargeResponse:
    settings = get_settings()
    payment_method = body.payment_method or PaymentMethod(settings.commission_default_payment_method)
    due_date = body.due_date or (ctx.now_utc + timedelta(days=settings.commission_default_due_days)).date()
    gateway = build_payment_gateway()

    async def _charge(session: AsyncSession) -> ChargeRequestResult:
        await CommissionSettlementService.get_for_establishment(
            session,
            commission_id=commission_id,
            establishment_id=ctx.establishment_id,
        )
        return await CommissionSettlementService.request_charge(
            session,
            commission_id=commission_id,
            payment_method=payment_method,
            due_date=due_date,
            extra=body.extra,
            gateway=gateway,
            now_utc=ctx.now_utc,
        )

    result = await run_serialized(_charge, attempts=settings.ledger_write_max_attempts)
    result.raise_for_gateway_error()
    return ChargeResponse(
        commission=CommissionResponse.model_validate(result.commission),
        payment=result.payment,
    )


@router.post("/{commission_id}/cancel", response_model=CommissionResponse)
async def cancel_commission(
    commission_id: UUID,
    ctx: OperationContext = Depends(require_operation_context),
) -> CommissionResponse:
    async def _cancel(session: AsyncSession) -> Commission:
        await CommissionSettlementService.get_for_establishment(
            session,
            commission_id=commission_id,
            establishment_id=ctx.establishment_id,
        )
        return await CommissionSettlementService.cancel_commission(
            session,
            commission_id=commission_id,
            now_utc=ctx.now_utc,
        )

    commission = await run_serialized(_cancel, attempts=get_settings().ledger_write_max_attempts)
    logger.info("commission_cancel_requested", commission_id=str(commission_id), status=commission.status)
    return CommissionResponse.model_validate(commission)
