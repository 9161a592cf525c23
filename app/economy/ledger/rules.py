from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from app.economy.errors import InsufficientBalanceError, InvalidOperationError, ValidationError
from app.economy.ledger.types import (
    BalanceChange,
    GiftCardSnapshot,
    GiftCardStatus,
    TransactionType,
)

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")


def validate_operation_amount(amount: Decimal | str | int, *, max_amount: Decimal) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Amount is not a number", code="E_INVALID_AMOUNT") from exc

    if not value.is_finite():
        raise ValidationError("Amount is not a number", code="E_INVALID_AMOUNT")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", code="E_INVALID_AMOUNT")
    if value != value.quantize(MONEY_QUANT):
        raise ValidationError("Amount must have at most two decimal places", code="E_INVALID_AMOUNT")
    if value > max_amount:
        raise ValidationError(
            f"Amount must not exceed {max_amount}",
            code="E_AMOUNT_ABOVE_LIMIT",
            details={"max_amount": str(max_amount)},
        )
    return value.quantize(MONEY_QUANT)


def compute_balance_change(
    snapshot: GiftCardSnapshot,
    *,
    delta: Decimal,
    transaction_type: TransactionType,
    now_utc: datetime,
) -> BalanceChange:
    if delta == 0:
        raise ValidationError("Balance change must not be zero", code="E_INVALID_AMOUNT")
    if transaction_type is TransactionType.USAGE and delta > 0:
        raise ValidationError("Usage must decrease the balance", code="E_INVALID_AMOUNT")
    if transaction_type is not TransactionType.USAGE and delta < 0:
        raise ValidationError(
            f"{transaction_type.value.lower()} must increase the balance",
            code="E_INVALID_AMOUNT",
        )

    amount = abs(delta)
    if snapshot.status is GiftCardStatus.USED and transaction_type is TransactionType.USAGE:
        # Nothing left to spend on a used card.
        raise InsufficientBalanceError(available=snapshot.current_balance, requested=amount)
    if snapshot.status is not GiftCardStatus.ACTIVE:
        raise InvalidOperationError(
            f"Gift card is {snapshot.status.value}",
            code="E_GIFT_CARD_NOT_ACTIVE",
            details={"status": snapshot.status.value},
        )
    if snapshot.valid_until is not None and snapshot.valid_until <= now_utc:
        raise InvalidOperationError("Gift card has expired", code="E_GIFT_CARD_EXPIRED")

    balance_after = snapshot.current_balance + delta
    if balance_after < 0:
        raise InsufficientBalanceError(available=snapshot.current_balance, requested=amount)
    if balance_after > snapshot.initial_value:
        raise InvalidOperationError(
            "Balance would exceed the initial value of the gift card",
            code="E_BALANCE_ABOVE_INITIAL_VALUE",
            details={
                "initial_value": str(snapshot.initial_value),
                "current_balance": str(snapshot.current_balance),
                "requested": str(amount),
            },
        )

    status_after = snapshot.status
    if transaction_type is TransactionType.USAGE and balance_after == 0:
        status_after = GiftCardStatus.USED

    return BalanceChange(
        transaction_type=transaction_type,
        amount=amount,
        balance_before=snapshot.current_balance,
        balance_after=balance_after,
        status_after=status_after,
        sequence=snapshot.last_sequence + 1,
    )
