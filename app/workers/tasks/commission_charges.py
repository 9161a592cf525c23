from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import UUID

import structlog
from celery import Task
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.repo.commissions_repo import CommissionsRepo
from app.db.session import SessionLocal
from app.economy.commissions.service import CommissionSettlementService
from app.economy.commissions.types import ChargeRequestResult, CommissionStatus, FailureReason, PaymentMethod
from app.economy.errors import GatewayError, GiftCardPlatformError
from app.economy.ledger.concurrency import run_serialized
from app.services.payment_gateway import PaymentGateway, PaymentGatewayClient
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app
from app.workers.tasks.reliability import emit_reliability_event, retry_backoff_seconds

logger = structlog.get_logger(__name__)
settings = get_settings()
CHARGE_MAX_ATTEMPTS = max(1, int(settings.commission_charge_max_attempts))
TASK_MAX_RETRIES = CHARGE_MAX_ATTEMPTS - 1
BACKOFF_BASE_SECONDS = max(1, int(settings.commission_charge_backoff_base_seconds))
BACKOFF_MAX_SECONDS = max(BACKOFF_BASE_SECONDS, int(settings.commission_charge_backoff_max_seconds))
PENDING_SWEEP_MIN_AGE = timedelta(minutes=2)
PENDING_SWEEP_BATCH_SIZE = 200

EVENT_COMMISSION_CHARGE_RETRY_SCHEDULED = "commission_charge_retry_scheduled"
EVENT_COMMISSION_CHARGE_FAILED_FINAL = "commission_charge_failed_final"

OUTCOME_CHARGED = "charged"
OUTCOME_SKIPPED = "skipped"
OUTCOME_MISSING = "missing"


def build_payment_gateway() -> PaymentGateway:
    return PaymentGatewayClient.from_settings()


def default_due_date(now_utc: datetime) -> date:
    return (now_utc + timedelta(days=max(0, settings.commission_default_due_days))).date()


def is_chargeable(status: str, failure_reason: str | None) -> bool:
    if status == CommissionStatus.PENDING.value:
        return True
    return status == CommissionStatus.FAILED.value and failure_reason == FailureReason.GATEWAY_ERROR.value


async def create_commission_charge_async(
    commission_id: UUID,
    *,
    payment_method: PaymentMethod,
    due_date: date | None = None,
    gateway: PaymentGateway | None = None,
) -> str:
    now_utc = datetime.now(timezone.utc)
    resolved_gateway = gateway if gateway is not None else build_payment_gateway()
    resolved_due_date = due_date or default_due_date(now_utc)

    async def _charge(session: AsyncSession) -> ChargeRequestResult | str:
        commission = await CommissionsRepo.get_by_id_for_update(session, commission_id)
        if commission is None:
            return OUTCOME_MISSING
        if not is_chargeable(commission.status, commission.failure_reason):
            logger.info(
                "commission_charge_skipped",
                commission_id=str(commission_id),
                status=commission.status,
                failure_reason=commission.failure_reason,
            )
            return OUTCOME_SKIPPED
        return await CommissionSettlementService.request_charge(
            session,
            commission_id=commission_id,
            payment_method=payment_method,
            due_date=resolved_due_date,
            gateway=resolved_gateway,
            now_utc=now_utc,
        )

    result = await run_serialized(_charge, attempts=settings.ledger_write_max_attempts)
    if isinstance(result, str):
        if result == OUTCOME_MISSING:
            logger.warning("commission_charge_commission_missing", commission_id=str(commission_id))
        return result

    result.raise_for_gateway_error()
    return OUTCOME_CHARGED


def enqueue_commission_charge(
    commission_id: UUID,
    *,
    payment_method: PaymentMethod | None = None,
    due_date: date | None = None,
) -> bool:
    """Queue the charge job; failures are logged and left to the pending sweep."""
    try:
        create_commission_charge.delay(
            commission_id=str(commission_id),
            payment_method=payment_method.value if payment_method is not None else None,
            due_date=due_date.isoformat() if due_date is not None else None,
        )
    except Exception:
        logger.exception("commission_charge_enqueue_failed", commission_id=str(commission_id))
        return False
    return True


@celery_app.task(
    name="app.workers.tasks.commission_charges.create_commission_charge",
    bind=True,
    max_retries=TASK_MAX_RETRIES,
    acks_late=True,
    reject_on_worker_lost=True,
)
def create_commission_charge(
    self: Task,
    commission_id: str,
    payment_method: str | None = None,
    due_date: str | None = None,
) -> str:
    task_id = str(self.request.id) if self.request.id is not None else None
    try:
        resolved_commission_id = UUID(commission_id)
        resolved_method = PaymentMethod(payment_method or settings.commission_default_payment_method)
        resolved_due_date = date.fromisoformat(due_date) if due_date else None
    except ValueError:
        logger.warning(
            "commission_charge_invalid_arguments",
            commission_id=commission_id,
            payment_method=payment_method,
            due_date=due_date,
        )
        return "ignored"

    try:
        return run_async_job(
            create_commission_charge_async(
                resolved_commission_id,
                payment_method=resolved_method,
                due_date=resolved_due_date,
            )
        )
    except GiftCardPlatformError as exc:
        if not isinstance(exc, GatewayError):
            logger.warning(
                "commission_charge_rejected",
                commission_id=commission_id,
                error_code=exc.code,
                kind=exc.kind,
            )
            return OUTCOME_SKIPPED
        failure: Exception = exc
    except Exception as exc:
        failure = exc

    current_retries = max(0, int(getattr(self.request, "retries", 0)))
    attempt = current_retries + 1
    if current_retries >= TASK_MAX_RETRIES:
        logger.error(
            "commission_charge_failed_final",
            commission_id=commission_id,
            task_id=task_id,
            attempts=attempt,
            max_attempts=CHARGE_MAX_ATTEMPTS,
            error=str(failure),
        )
        run_async_job(
            emit_reliability_event(
                event_type=EVENT_COMMISSION_CHARGE_FAILED_FINAL,
                payload={
                    "commission_id": commission_id,
                    "task_id": task_id,
                    "attempts": attempt,
                    "max_attempts": CHARGE_MAX_ATTEMPTS,
                    "payment_method": resolved_method.value,
                    "error": str(failure),
                },
                status="DEAD",
            )
        )
        raise failure

    retry_in_seconds = retry_backoff_seconds(
        next_retry_attempt=attempt,
        base_seconds=BACKOFF_BASE_SECONDS,
        backoff_max_seconds=BACKOFF_MAX_SECONDS,
    )
    logger.warning(
        "commission_charge_retry_scheduled",
        commission_id=commission_id,
        task_id=task_id,
        retry_attempt=attempt,
        retry_in_seconds=retry_in_seconds,
        max_attempts=CHARGE_MAX_ATTEMPTS,
    )
    run_async_job(
        emit_reliability_event(
            event_type=EVENT_COMMISSION_CHARGE_RETRY_SCHEDULED,
            payload={
                "commission_id": commission_id,
                "task_id": task_id,
                "retry_attempt": attempt,
                "retry_in_seconds": retry_in_seconds,
                "max_attempts": CHARGE_MAX_ATTEMPTS,
            },
        )
    )
    raise self.retry(
        exc=failure,
        countdown=retry_in_seconds,
        max_retries=TASK_MAX_RETRIES,
    )


async def sweep_pending_commissions_async() -> dict[str, int]:
    older_than_utc = datetime.now(timezone.utc) - PENDING_SWEEP_MIN_AGE
    async with SessionLocal.begin() as session:
        commission_ids = await CommissionsRepo.list_pending_ids_older_than(
            session,
            older_than_utc=older_than_utc,
            limit=PENDING_SWEEP_BATCH_SIZE,
        )

    enqueued = sum(1 for commission_id in commission_ids if enqueue_commission_charge(commission_id))
    result = {
        "pending_found": len(commission_ids),
        "enqueued": enqueued,
        "enqueue_failed": len(commission_ids) - enqueued,
    }
    logger.info("pending_commissions_sweep_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.commission_charges.sweep_pending_commissions")
def sweep_pending_commissions() -> dict[str, int]:
    return run_async_job(sweep_pending_commissions_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "sweep-pending-commissions-every-5-minutes": {
            "task": "app.workers.tasks.commission_charges.sweep_pending_commissions",
            "schedule": 300.0,
            "options": {"queue": "q_normal"},
        },
    }
)
