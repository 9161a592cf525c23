from __future__ import annotations

from decimal import Decimal
from typing import Any


class GiftCardPlatformError(Exception):
    kind = "platform_error"
    status_code = 500
    default_code = "E_PLATFORM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})

    def to_payload(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "status": self.status_code,
            "details": self.details,
        }


class ValidationError(GiftCardPlatformError):
    kind = "validation_error"
    status_code = 400
    default_code = "E_VALIDATION"


class NotFoundError(GiftCardPlatformError):
    kind = "not_found"
    status_code = 404
    default_code = "E_NOT_FOUND"


class InsufficientBalanceError(GiftCardPlatformError):
    kind = "insufficient_balance"
    status_code = 422
    default_code = "E_INSUFFICIENT_BALANCE"

    def __init__(self, *, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Insufficient balance: available {available}, requested {requested}",
            details={"available": str(available), "requested": str(requested)},
        )
        self.available = available
        self.requested = requested


class InvalidOperationError(GiftCardPlatformError):
    kind = "invalid_operation"
    status_code = 409
    default_code = "E_INVALID_OPERATION"


class ConflictError(GiftCardPlatformError):
    kind = "conflict"
    status_code = 409
    default_code = "E_CONFLICT"


class GatewayError(GiftCardPlatformError):
    kind = "gateway_error"
    status_code = 502
    default_code = "E_GATEWAY"

    def __init__(
        self,
        message: str,
        *,
        provider_status: int | None = None,
        errors: list[str] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"provider_status": provider_status, "errors": list(errors or [])},
        )
        self.provider_status = provider_status
        self.errors = list(errors or [])


class SignatureError(GiftCardPlatformError):
    kind = "signature_error"
    status_code = 401
    default_code = "E_INVALID_SIGNATURE"
