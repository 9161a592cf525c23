from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.commissions import Commission


class CommissionsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, commission_id: UUID) -> Commission | None:
        return await session.get(Commission, commission_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, commission_id: UUID) -> Commission | None:
        stmt = (
            select(Commission)
            .where(Commission.id == commission_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_charge_ref_for_update(session: AsyncSession, charge_ref: str) -> Commission | None:
        stmt = (
            select(Commission)
            .where(Commission.charge_ref == charge_ref)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, commission: Commission) -> Commission:
        session.add(commission)
        await session.flush()
        return commission

    @staticmethod
    async def list_pending_ids_older_than(
        session: AsyncSession,
        *,
        older_than_utc: datetime,
        limit: int = 100,
    ) -> list[UUID]:
        stmt = (
            select(Commission.id)
            .where(
                Commission.status == "PENDING",
                Commission.created_at <= older_than_utc,
            )
            .order_by(Commission.created_at.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
