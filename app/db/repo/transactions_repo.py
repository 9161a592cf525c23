from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.transactions import Transaction


class TransactionsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, transaction_id: UUID) -> Transaction | None:
        return await session.get(Transaction, transaction_id)

    @staticmethod
    async def create(session: AsyncSession, *, transaction: Transaction) -> Transaction:
        session.add(transaction)
        await session.flush()
        return transaction

    @staticmethod
    async def list_for_gift_card(
        session: AsyncSession,
        *,
        gift_card_id: UUID,
        limit: int | None = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.gift_card_id == gift_card_id)
            .order_by(Transaction.sequence.asc())
        )
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        result = await session.execute(stmt)
        return list(result.scalars().all())
