from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.gift_cards import GiftCard


class GiftCardsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, gift_card_id: UUID) -> GiftCard | None:
        return await session.get(GiftCard, gift_card_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, gift_card_id: UUID) -> GiftCard | None:
        stmt = (
            select(GiftCard)
            .where(GiftCard.id == gift_card_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> GiftCard | None:
        stmt = select(GiftCard).where(GiftCard.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def code_exists(session: AsyncSession, code: str) -> bool:
        stmt = select(GiftCard.id).where(GiftCard.code == code).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(session: AsyncSession, *, gift_card: GiftCard) -> GiftCard:
        session.add(gift_card)
        await session.flush()
        return gift_card

    @staticmethod
    async def expire_due(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> int:
        candidate_ids = (
            select(GiftCard.id)
            .where(
                GiftCard.status == "ACTIVE",
                GiftCard.valid_until.is_not(None),
                GiftCard.valid_until <= now_utc,
            )
            .order_by(GiftCard.valid_until.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(GiftCard)
            .where(GiftCard.id.in_(candidate_ids))
            .values(status="EXPIRED", updated_at=now_utc)
            .returning(GiftCard.id)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))
