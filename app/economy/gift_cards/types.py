from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.db.models.commissions import Commission
from app.db.models.gift_cards import GiftCard
from app.db.models.transactions import Transaction
from app.economy.errors import ValidationError


@dataclass(frozen=True, slots=True)
class GiftCardTarget:
    gift_card_id: UUID | None = None
    code: str | None = None

    def __post_init__(self) -> None:
        if (self.gift_card_id is None) == (self.code is None):
            raise ValidationError(
                "Exactly one of gift_card_id or code must be given",
                code="E_INVALID_TARGET",
            )

    @classmethod
    def by_id(cls, gift_card_id: UUID) -> GiftCardTarget:
        return cls(gift_card_id=gift_card_id)

    @classmethod
    def by_code(cls, code: str) -> GiftCardTarget:
        return cls(code=code)


@dataclass(frozen=True, slots=True)
class GiftCardCreateData:
    franchise_id: int
    initial_value: Decimal
    valid_until: datetime | None = None


@dataclass(slots=True)
class GiftCardCreateResult:
    gift_card: GiftCard
    scannable_code: str


@dataclass(slots=True)
class GiftCardBatchError:
    index: int
    code: str
    message: str


@dataclass(slots=True)
class GiftCardBatchResult:
    quantity: int
    created: list[GiftCardCreateResult] = field(default_factory=list)
    errors: list[GiftCardBatchError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)


@dataclass(slots=True)
class RechargeResult:
    transaction: Transaction
    gift_card: GiftCard
    commission: Commission


@dataclass(slots=True)
class UsageResult:
    transaction: Transaction
    gift_card: GiftCard


@dataclass(frozen=True, slots=True)
class EstablishmentSummary:
    name: str
    category: str | None


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    code: str
    current_balance: Decimal
    initial_value: Decimal
    status: str
    valid_until: datetime | None
    establishment: EstablishmentSummary
