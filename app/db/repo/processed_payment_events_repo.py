from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.processed_payment_events import ProcessedPaymentEvent


class ProcessedPaymentEventsRepo:
    @staticmethod
    async def try_create_processing_slot(
        session: AsyncSession,
        *,
        charge_ref: str,
        event_kind: str,
        processing_task_id: str | None,
    ) -> bool:
        stmt = (
            postgresql_insert(ProcessedPaymentEvent)
            .values(
                charge_ref=charge_ref,
                event_kind=event_kind,
                status="PROCESSING",
                processed_at=func.now(),
                processing_task_id=processing_task_id,
            )
            .on_conflict_do_nothing(
                index_elements=[ProcessedPaymentEvent.charge_ref, ProcessedPaymentEvent.event_kind]
            )
            .returning(ProcessedPaymentEvent.charge_ref)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_reclaim_failed_processing_slot(
        session: AsyncSession,
        *,
        charge_ref: str,
        event_kind: str,
        processing_task_id: str | None,
    ) -> bool:
        stmt = (
            update(ProcessedPaymentEvent)
            .where(
                ProcessedPaymentEvent.charge_ref == charge_ref,
                ProcessedPaymentEvent.event_kind == event_kind,
                ProcessedPaymentEvent.status == "FAILED",
            )
            .values(
                status="PROCESSING",
                processed_at=func.now(),
                processing_task_id=processing_task_id,
            )
            .returning(ProcessedPaymentEvent.charge_ref)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_reclaim_stale_processing_slot(
        session: AsyncSession,
        *,
        charge_ref: str,
        event_kind: str,
        processing_task_id: str | None,
        processing_ttl_seconds: int,
    ) -> bool:
        processing_age_seconds = func.extract(
            "epoch",
            func.now() - ProcessedPaymentEvent.processed_at,
        )
        stmt = (
            update(ProcessedPaymentEvent)
            .where(
                ProcessedPaymentEvent.charge_ref == charge_ref,
                ProcessedPaymentEvent.event_kind == event_kind,
                ProcessedPaymentEvent.status == "PROCESSING",
                processing_age_seconds >= max(1, int(processing_ttl_seconds)),
            )
            .values(
                status="PROCESSING",
                processed_at=func.now(),
                processing_task_id=processing_task_id,
            )
            .returning(ProcessedPaymentEvent.charge_ref)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_status(
        session: AsyncSession,
        *,
        charge_ref: str,
        event_kind: str,
        status: str,
        processing_task_id: str | None = None,
    ) -> int:
        stmt = (
            update(ProcessedPaymentEvent)
            .where(
                ProcessedPaymentEvent.charge_ref == charge_ref,
                ProcessedPaymentEvent.event_kind == event_kind,
            )
            .values(
                status=status,
                processed_at=func.now(),
                processing_task_id=processing_task_id,
            )
            .returning(ProcessedPaymentEvent.charge_ref)
        )
        result = await session.execute(stmt)
        return 1 if result.scalar_one_or_none() is not None else 0

    @staticmethod
    async def get(
        session: AsyncSession,
        *,
        charge_ref: str,
        event_kind: str,
    ) -> ProcessedPaymentEvent | None:
        return await session.get(ProcessedPaymentEvent, (charge_ref, event_kind))

    @staticmethod
    async def delete_processed_before(
        session: AsyncSession,
        *,
        cutoff_utc: datetime,
        limit: int,
    ) -> int:
        candidates = (
            select(ProcessedPaymentEvent.charge_ref, ProcessedPaymentEvent.event_kind)
            .where(
                ProcessedPaymentEvent.status == "PROCESSED",
                ProcessedPaymentEvent.processed_at < cutoff_utc,
            )
            .order_by(ProcessedPaymentEvent.processed_at.asc())
            .limit(max(1, int(limit)))
            .subquery()
        )
        stmt = (
            delete(ProcessedPaymentEvent)
            .where(
                ProcessedPaymentEvent.charge_ref == candidates.c.charge_ref,
                ProcessedPaymentEvent.event_kind == candidates.c.event_kind,
            )
            .returning(ProcessedPaymentEvent.charge_ref)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))
