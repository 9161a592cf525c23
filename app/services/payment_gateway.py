from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

import httpx
import structlog

from app.core.config import get_settings
from app.economy.errors import GatewayError

logger = structlog.get_logger(__name__)

BILLING_TYPES = {
    "PIX": "PIX",
    "BOLETO": "BOLETO",
    "CREDIT_CARD": "CREDIT_CARD",
}


@dataclass(frozen=True, slots=True)
class CustomerProfile:
    establishment_id: int
    name: str
    document: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class ChargeRequest:
    customer_ref: str
    payment_method: str
    value: Decimal
    due_date: date
    description: str
    external_reference: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GatewayCharge:
    charge_ref: str
    status: str
    invoice_url: str | None
    invoice_details: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    async def create_customer(self, profile: CustomerProfile) -> str: ...

    async def create_charge(self, request: ChargeRequest) -> GatewayCharge: ...


def _error_descriptions(response: httpx.Response) -> list[str]:
    try:
        body = response.json()
    except ValueError:
        return [response.text[:200]] if response.text else []
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        return []
    return [str(item.get("description", item)) for item in errors if item]


class PaymentGatewayClient:
    """Narrow async client for customer and charge creation on the payment provider."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    @classmethod
    def from_settings(cls) -> PaymentGatewayClient:
        settings = get_settings()
        return cls(
            base_url=settings.payment_gateway_base_url,
            api_key=settings.payment_gateway_api_key,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "access_token": self._api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json_body)
        except httpx.HTTPError as exc:
            logger.warning("payment_gateway_transport_error", method=method, path=path, error=str(exc))
            raise GatewayError(
                f"Payment gateway unreachable: {exc.__class__.__name__}",
                code="E_GATEWAY_UNAVAILABLE",
            ) from exc

        if response.is_error:
            errors = _error_descriptions(response)
            logger.warning(
                "payment_gateway_request_rejected",
                method=method,
                path=path,
                provider_status=response.status_code,
                errors=errors,
            )
            raise GatewayError(
                f"Payment gateway rejected {method} {path}",
                provider_status=response.status_code,
                errors=errors,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(
                "Payment gateway returned a non-JSON body",
                provider_status=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise GatewayError(
                "Payment gateway returned an unexpected body",
                provider_status=response.status_code,
            )
        return body

    async def create_customer(self, profile: CustomerProfile) -> str:
        body = await self._request(
            "POST",
            "/customers",
            json_body={
                "name": profile.name,
                "cpfCnpj": profile.document,
                "email": profile.email,
                "externalReference": str(profile.establishment_id),
            },
        )
        customer_ref = body.get("id")
        if not customer_ref:
            raise GatewayError("Payment gateway did not return a customer id")
        return str(customer_ref)

    async def create_charge(self, request: ChargeRequest) -> GatewayCharge:
        billing_type = BILLING_TYPES.get(request.payment_method)
        if billing_type is None:
            raise GatewayError(
                f"Unsupported payment method {request.payment_method}",
                code="E_GATEWAY_UNSUPPORTED_METHOD",
            )

        payload: dict[str, Any] = {
            "customer": request.customer_ref,
            "billingType": billing_type,
            "value": float(request.value),
            "dueDate": request.due_date.isoformat(),
            "description": request.description,
            "externalReference": request.external_reference,
        }
        if billing_type == "CREDIT_CARD":
            for key in ("creditCardToken", "creditCard", "creditCardHolderInfo", "remoteIp"):
                if key in request.extra:
                    payload[key] = request.extra[key]

        body = await self._request("POST", "/payments", json_body=payload)
        charge_ref = body.get("id")
        if not charge_ref:
            raise GatewayError("Payment gateway did not return a charge id")

        invoice_details: dict[str, Any] = {
            "invoice_url": body.get("invoiceUrl"),
            "bank_slip_url": body.get("bankSlipUrl"),
        }
        if billing_type == "PIX":
            # The charge already exists; a missing QR code must not fail the request.
            try:
                pix = await self._request("GET", f"/payments/{charge_ref}/pixQrCode")
            except GatewayError as exc:
                logger.warning(
                    "payment_gateway_pix_qr_unavailable",
                    charge_ref=str(charge_ref),
                    provider_status=exc.provider_status,
                )
            else:
                invoice_details["pix_payload"] = pix.get("payload")
                invoice_details["pix_encoded_image"] = pix.get("encodedImage")
                invoice_details["pix_expiration_date"] = pix.get("expirationDate")

        logger.info(
            "payment_gateway_charge_created",
            charge_ref=str(charge_ref),
            billing_type=billing_type,
            external_reference=request.external_reference,
        )
        return GatewayCharge(
            charge_ref=str(charge_ref),
            status=str(body.get("status") or "PENDING"),
            invoice_url=body.get("invoiceUrl"),
            invoice_details=invoice_details,
        )


def compute_webhook_signature(*, secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(*, secret: str, body: bytes, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    expected = compute_webhook_signature(secret=secret, body=body)
    return hmac.compare_digest(expected, signature.strip().lower())
