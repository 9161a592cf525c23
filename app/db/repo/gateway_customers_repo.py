from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.gateway_customers import GatewayCustomer


class GatewayCustomersRepo:
    @staticmethod
    async def get_customer_ref(session: AsyncSession, establishment_id: int) -> str | None:
        stmt = select(GatewayCustomer.customer_ref).where(
            GatewayCustomer.establishment_id == establishment_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def save_customer_ref(
        session: AsyncSession,
        *,
        establishment_id: int,
        customer_ref: str,
        now_utc: datetime,
    ) -> str:
        stmt = (
            postgresql_insert(GatewayCustomer)
            .values(
                establishment_id=establishment_id,
                customer_ref=customer_ref,
                created_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[GatewayCustomer.establishment_id])
            .returning(GatewayCustomer.customer_ref)
        )
        result = await session.execute(stmt)
        inserted = result.scalar_one_or_none()
        if inserted is not None:
            return inserted

        existing = await GatewayCustomersRepo.get_customer_ref(session, establishment_id)
        return existing if existing is not None else customer_ref
