from __future__ import annotations

import asyncio
import json

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.economy.errors import SignatureError
from app.services.payment_gateway import verify_webhook_signature
from app.services.payment_webhooks import PaymentWebhookEnvelope, extract_payment_envelope
from app.workers.tasks.payment_webhooks import process_payment_webhook

router = APIRouter(tags=["webhooks"])
logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


async def _enqueue_event(
    *,
    envelope: PaymentWebhookEnvelope,
    timeout_seconds: float,
) -> bool:
    def enqueue_call() -> object:
        return process_payment_webhook.delay(
            event=envelope.event,
            payment=envelope.payment,
        )

    try:
        if _is_celery_task(process_payment_webhook):
            await asyncio.wait_for(
                asyncio.to_thread(enqueue_call),
                timeout=timeout_seconds,
            )
        else:
            enqueue_call()
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "payment_webhook_enqueue_timeout",
            charge_ref=envelope.charge_ref,
            enqueue_timeout_seconds=timeout_seconds,
        )
        return False
    except Exception as exc:
        logger.warning(
            "payment_webhook_enqueue_failed",
            charge_ref=envelope.charge_ref,
            error_type=type(exc).__name__,
        )
        return False


@router.post("/webhooks/payments")
async def payment_webhook(request: Request) -> JSONResponse:
    settings = get_settings()
    raw_body = await request.body()
    if not verify_webhook_signature(
        secret=settings.payment_gateway_webhook_secret,
        body=raw_body,
        signature=request.headers.get(SIGNATURE_HEADER),
    ):
        logger.warning("payment_webhook_invalid_signature")
        raise SignatureError("Webhook signature is missing or invalid")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("payment_webhook_invalid_json")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ignored"})

    envelope = extract_payment_envelope(payload)
    if envelope is None:
        logger.warning("payment_webhook_missing_payment")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ignored"})

    enqueue_timeout_ms = max(1, int(settings.payment_webhook_enqueue_timeout_ms))
    enqueued = await _enqueue_event(
        envelope=envelope,
        timeout_seconds=enqueue_timeout_ms / 1000.0,
    )
    if not enqueued:
        # Never acknowledge a delivery that did not reach the queue; the gateway redelivers on non-2xx.
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "retry"},
        )
    logger.info("payment_webhook_queued", charge_ref=envelope.charge_ref, gateway_event=envelope.event)
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "queued"})
