from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.economy.gift_cards.types import (
    BalanceSnapshot,
    GiftCardBatchResult,
    GiftCardCreateResult,
    RechargeResult,
    UsageResult,
)


class GiftCardCreateRequest(BaseModel):
    franchise_id: int = Field(gt=0)
    initial_value: Decimal
    valid_until: datetime | None = None


class GiftCardBatchRequest(GiftCardCreateRequest):
    quantity: int


class BalanceOperationRequest(BaseModel):
    amount: Decimal
    description: str | None = Field(default=None, max_length=500)


class GiftCardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    franchise_id: int
    establishment_id: int
    initial_value: Decimal
    current_balance: Decimal
    status: str
    valid_until: datetime | None = None
    created_at: datetime
    updated_at: datetime


class GiftCardCreateResponse(GiftCardResponse):
    scannable_code: str

    @classmethod
    def from_result(cls, result: GiftCardCreateResult) -> GiftCardCreateResponse:
        card = GiftCardResponse.model_validate(result.gift_card)
        return cls(**card.model_dump(), scannable_code=result.scannable_code)


class GiftCardBatchErrorResponse(BaseModel):
    index: int
    code: str
    message: str


class GiftCardBatchResponse(BaseModel):
    quantity: int
    created_count: int
    created: list[GiftCardCreateResponse]
    errors: list[GiftCardBatchErrorResponse]

    @classmethod
    def from_result(cls, result: GiftCardBatchResult) -> GiftCardBatchResponse:
        return cls(
            quantity=result.quantity,
            created_count=result.created_count,
            created=[GiftCardCreateResponse.from_result(item) for item in result.created],
            errors=[
                GiftCardBatchErrorResponse(index=item.index, code=item.code, message=item.message)
                for item in result.errors
            ],
        )


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    gift_card_id: UUID
    establishment_id: int
    sequence: int
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str | None = None
    created_at: datetime


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    franchise_id: int
    establishment_id: int
    transaction_id: UUID
    amount: Decimal
    rate: Decimal
    status: str
    charge_ref: str | None = None
    payment_method: str | None = None
    due_date: date | None = None
    invoice_url: str | None = None
    failure_reason: str | None = None
    charge_attempts: int
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RechargeResponse(BaseModel):
    transaction: TransactionResponse
    gift_card: GiftCardResponse
    commission: CommissionResponse

    @classmethod
    def from_result(cls, result: RechargeResult) -> RechargeResponse:
        return cls(
            transaction=TransactionResponse.model_validate(result.transaction),
            gift_card=GiftCardResponse.model_validate(result.gift_card),
            commission=CommissionResponse.model_validate(result.commission),
        )


class UsageResponse(BaseModel):
    transaction: TransactionResponse
    gift_card: GiftCardResponse

    @classmethod
    def from_result(cls, result: UsageResult) -> UsageResponse:
        return cls(
            transaction=TransactionResponse.model_validate(result.transaction),
            gift_card=GiftCardResponse.model_validate(result.gift_card),
        )


class EstablishmentSummaryResponse(BaseModel):
    name: str
    category: str | None = None


class BalanceResponse(BaseModel):
    code: str
    current_balance: Decimal
    initial_value: Decimal
    status: str
    valid_until: datetime | None = None
    establishment: EstablishmentSummaryResponse

    @classmethod
    def from_snapshot(cls, snapshot: BalanceSnapshot) -> BalanceResponse:
        return cls(
            code=snapshot.code,
            current_balance=snapshot.current_balance,
            initial_value=snapshot.initial_value,
            status=snapshot.status,
            valid_until=snapshot.valid_until,
            establishment=EstablishmentSummaryResponse(
                name=snapshot.establishment.name,
                category=snapshot.establishment.category,
            ),
        )
