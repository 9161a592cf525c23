from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from app.economy.errors import ValidationError

MONEY_QUANT = Decimal("0.01")
HUNDRED = Decimal("100")


def compute_commission_amount(amount: Decimal, rate: Decimal) -> Decimal:
    """Commission owed on ``amount`` at ``rate`` percent, rounded half-up to cents."""
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(
            "Commission rate must be between 0 and 100",
            code="E_INVALID_COMMISSION_RATE",
            details={"rate": str(rate)},
        )
    return (Decimal(amount) * Decimal(rate) / HUNDRED).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def validate_batch_quantity(quantity: int, *, max_quantity: int) -> int:
    if quantity < 1 or quantity > max_quantity:
        raise ValidationError(
            f"Quantity must be between 1 and {max_quantity}",
            code="E_INVALID_BATCH_QUANTITY",
            details={"quantity": quantity, "max_quantity": max_quantity},
        )
    return quantity
