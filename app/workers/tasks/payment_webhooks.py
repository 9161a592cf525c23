from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from celery import Task
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.repo.processed_payment_events_repo import ProcessedPaymentEventsRepo
from app.db.session import SessionLocal
from app.economy.commissions.service import CommissionSettlementService
from app.economy.commissions.types import WebhookApplyResult
from app.economy.errors import NotFoundError
from app.economy.ledger.concurrency import run_serialized
from app.services.payment_webhooks import extract_payment_envelope
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app
from app.workers.tasks.reliability import emit_reliability_event, retry_backoff_seconds

logger = structlog.get_logger(__name__)
settings = get_settings()
PROCESSING_TTL_SECONDS = max(1, int(settings.payment_webhook_processing_ttl_seconds))
TASK_MAX_RETRIES = max(0, int(settings.payment_webhook_task_max_retries))
TASK_RETRY_BACKOFF_MAX_SECONDS = max(1, int(settings.payment_webhook_task_retry_backoff_max_seconds))

EVENT_PAYMENT_WEBHOOK_RECLAIMED = "payment_webhook_reclaimed"
EVENT_PAYMENT_WEBHOOK_RETRY_SCHEDULED = "payment_webhook_retry_scheduled"
EVENT_PAYMENT_WEBHOOK_FAILED_FINAL = "payment_webhook_failed_final"

_ACQUIRE_CREATED = "created"
_ACQUIRE_RECLAIMED_FAILED = "reclaimed_failed"
_ACQUIRE_RECLAIMED_STALE = "reclaimed_stale"
_ACQUIRE_DUPLICATE = "duplicate"


async def _acquire_processing_slot(
    charge_ref: str,
    event_kind: str,
    *,
    task_id: str | None,
    processing_ttl_seconds: int,
) -> str:
    async with SessionLocal.begin() as session:
        created = await ProcessedPaymentEventsRepo.try_create_processing_slot(
            session,
            charge_ref=charge_ref,
            event_kind=event_kind,
            processing_task_id=task_id,
        )
        if created:
            return _ACQUIRE_CREATED

        reclaimed_failed = await ProcessedPaymentEventsRepo.try_reclaim_failed_processing_slot(
            session,
            charge_ref=charge_ref,
            event_kind=event_kind,
            processing_task_id=task_id,
        )
        if reclaimed_failed:
            return _ACQUIRE_RECLAIMED_FAILED

        reclaimed_stale = await ProcessedPaymentEventsRepo.try_reclaim_stale_processing_slot(
            session,
            charge_ref=charge_ref,
            event_kind=event_kind,
            processing_task_id=task_id,
            processing_ttl_seconds=processing_ttl_seconds,
        )
        if reclaimed_stale:
            return _ACQUIRE_RECLAIMED_STALE

    return _ACQUIRE_DUPLICATE


async def _set_slot_status(charge_ref: str, event_kind: str, *, status: str) -> None:
    async with SessionLocal.begin() as session:
        await ProcessedPaymentEventsRepo.set_status(
            session,
            charge_ref=charge_ref,
            event_kind=event_kind,
            status=status,
            processing_task_id=None,
        )


async def process_payment_event_async(
    *,
    event: str,
    payment: dict[str, Any],
    charge_ref: str,
    task_id: str | None = None,
) -> str:
    event_kind = event.strip().upper()
    acquire_outcome = await _acquire_processing_slot(
        charge_ref,
        event_kind,
        task_id=task_id,
        processing_ttl_seconds=PROCESSING_TTL_SECONDS,
    )
    if acquire_outcome == _ACQUIRE_DUPLICATE:
        logger.info("payment_webhook_duplicate", charge_ref=charge_ref, event_kind=event_kind)
        return "duplicate"

    if acquire_outcome == _ACQUIRE_RECLAIMED_STALE:
        logger.warning(
            "payment_webhook_processing_reclaimed_stale",
            charge_ref=charge_ref,
            event_kind=event_kind,
            processing_ttl_seconds=PROCESSING_TTL_SECONDS,
        )
        await emit_reliability_event(
            event_type=EVENT_PAYMENT_WEBHOOK_RECLAIMED,
            payload={
                "charge_ref": charge_ref,
                "event_kind": event_kind,
                "task_id": task_id,
                "processing_ttl_seconds": PROCESSING_TTL_SECONDS,
            },
        )
    elif acquire_outcome == _ACQUIRE_RECLAIMED_FAILED:
        logger.info("payment_webhook_processing_reclaimed_failed", charge_ref=charge_ref, event_kind=event_kind)

    async def _apply(session: AsyncSession) -> WebhookApplyResult:
        return await CommissionSettlementService.apply_webhook_event(
            session,
            event=event_kind,
            payment=payment,
            now_utc=datetime.now(timezone.utc),
        )

    try:
        result = await run_serialized(_apply, attempts=settings.ledger_write_max_attempts)
    except NotFoundError:
        await _set_slot_status(charge_ref, event_kind, status="PROCESSED")
        logger.warning(
            "payment_webhook_commission_not_found",
            charge_ref=charge_ref,
            event_kind=event_kind,
            external_reference=payment.get("externalReference"),
        )
        return "dropped"
    except Exception:
        await _set_slot_status(charge_ref, event_kind, status="FAILED")
        logger.exception("payment_webhook_processing_failed", charge_ref=charge_ref, event_kind=event_kind)
        raise

    await _set_slot_status(charge_ref, event_kind, status="PROCESSED")
    logger.info(
        "payment_webhook_processed",
        charge_ref=charge_ref,
        event_kind=event_kind,
        commission_id=str(result.commission_id),
        outcome=result.outcome.value,
        status=result.status.value,
    )
    return result.outcome.value.lower()


@celery_app.task(
    name="app.workers.tasks.payment_webhooks.process_payment_webhook",
    bind=True,
    max_retries=TASK_MAX_RETRIES,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_payment_webhook(
    self: Task,
    event: str | None = None,
    payment: dict[str, Any] | None = None,
) -> str:
    envelope = extract_payment_envelope({"event": event, "payment": payment})
    if envelope is None:
        logger.warning("payment_webhook_malformed_payload", gateway_event=event)
        return "ignored"

    task_id = str(self.request.id) if self.request.id is not None else None
    try:
        return run_async_job(
            process_payment_event_async(
                event=envelope.event,
                payment=envelope.payment,
                charge_ref=envelope.charge_ref,
                task_id=task_id,
            )
        )
    except Exception as exc:
        current_retries = max(0, int(getattr(self.request, "retries", 0)))
        if current_retries >= TASK_MAX_RETRIES:
            logger.exception(
                "payment_webhook_failed_final",
                charge_ref=envelope.charge_ref,
                gateway_event=envelope.event,
                task_id=task_id,
                retries=current_retries,
                max_retries=TASK_MAX_RETRIES,
            )
            run_async_job(
                emit_reliability_event(
                    event_type=EVENT_PAYMENT_WEBHOOK_FAILED_FINAL,
                    payload={
                        "charge_ref": envelope.charge_ref,
                        "event": envelope.event,
                        "task_id": task_id,
                        "retries": current_retries,
                        "max_retries": TASK_MAX_RETRIES,
                    },
                    status="DEAD",
                )
            )
            raise

        next_retry_attempt = current_retries + 1
        retry_in_seconds = retry_backoff_seconds(
            next_retry_attempt=next_retry_attempt,
            backoff_max_seconds=TASK_RETRY_BACKOFF_MAX_SECONDS,
        )
        logger.warning(
            "payment_webhook_retry_scheduled",
            charge_ref=envelope.charge_ref,
            task_id=task_id,
            retry_attempt=next_retry_attempt,
            retry_in_seconds=retry_in_seconds,
            max_retries=TASK_MAX_RETRIES,
        )
        run_async_job(
            emit_reliability_event(
                event_type=EVENT_PAYMENT_WEBHOOK_RETRY_SCHEDULED,
                payload={
                    "charge_ref": envelope.charge_ref,
                    "event": envelope.event,
                    "task_id": task_id,
                    "retry_attempt": next_retry_attempt,
                    "retry_in_seconds": retry_in_seconds,
                    "max_retries": TASK_MAX_RETRIES,
                },
            )
        )
        raise self.retry(
            exc=exc,
            countdown=retry_in_seconds,
            max_retries=TASK_MAX_RETRIES,
        )
