from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.db.models.gift_cards import GiftCard
from app.db.models.transactions import Transaction


class GiftCardStatus(str, Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class TransactionType(str, Enum):
    RECHARGE = "RECHARGE"
    USAGE = "USAGE"
    REFUND = "REFUND"


TERMINAL_GIFT_CARD_STATUSES = frozenset(
    {GiftCardStatus.USED, GiftCardStatus.EXPIRED, GiftCardStatus.CANCELLED}
)


@dataclass(frozen=True, slots=True)
class GiftCardSnapshot:
    initial_value: Decimal
    current_balance: Decimal
    status: GiftCardStatus
    valid_until: datetime | None
    last_sequence: int


@dataclass(frozen=True, slots=True)
class BalanceChange:
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    status_after: GiftCardStatus
    sequence: int


@dataclass(slots=True)
class BalanceChangeResult:
    gift_card: GiftCard
    transaction: Transaction
