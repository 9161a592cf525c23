from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.outbox_events import OutboxEvent

# Dead-letter records stay until an operator resolves them.
RETAINED_STATUSES: tuple[str, ...] = ("DEAD",)


class OutboxEventsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        event_type: str,
        payload: dict[str, object],
        status: str,
    ) -> OutboxEvent:
        event = OutboxEvent(event_type=event_type, payload=dict(payload), status=status)
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def delete_created_before(
        session: AsyncSession,
        *,
        cutoff_utc: datetime,
        limit: int,
    ) -> int:
        expired_ids = (
            select(OutboxEvent.id)
            .where(OutboxEvent.created_at < cutoff_utc)
            .where(OutboxEvent.status.not_in(RETAINED_STATUSES))
            .order_by(OutboxEvent.id.asc())
            .limit(max(1, int(limit)))
            .scalar_subquery()
        )
        result = await session.execute(
            delete(OutboxEvent).where(OutboxEvent.id.in_(expired_ids)).returning(OutboxEvent.id)
        )
        return len(result.scalars().all())
