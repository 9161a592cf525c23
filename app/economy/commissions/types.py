from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from app.db.models.commissions import Commission
from app.economy.errors import GatewayError


class CommissionStatus(str, Enum):
    PENDING = "PENDING"
    CHARGED = "CHARGED"
    PAID = "PAID"
    FAILED = "FAILED"


class FailureReason(str, Enum):
    GATEWAY_ERROR = "GATEWAY_ERROR"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    OPERATOR_CANCELLED = "OPERATOR_CANCELLED"


class PaymentMethod(str, Enum):
    PIX = "PIX"
    BOLETO = "BOLETO"
    CREDIT_CARD = "CREDIT_CARD"


class Effect(str, Enum):
    APPLY = "APPLY"
    NOOP = "NOOP"
    REJECT = "REJECT"


@dataclass(slots=True)
class ChargeRequestResult:
    commission: Commission
    payment: dict[str, Any]
    gateway_error: GatewayError | None = None

    def raise_for_gateway_error(self) -> None:
        if self.gateway_error is not None:
            raise self.gateway_error


@dataclass(frozen=True, slots=True)
class WebhookApplyResult:
    commission_id: UUID
    outcome: Effect
    status: CommissionStatus
    event: str
