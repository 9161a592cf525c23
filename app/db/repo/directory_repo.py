from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.establishments import Establishment
from app.db.models.franchises import Franchise


class DirectoryRepo:
    """Read-only lookups into the franchise/establishment directory."""

    @staticmethod
    async def get_franchise(session: AsyncSession, franchise_id: int) -> Franchise | None:
        return await session.get(Franchise, franchise_id)

    @staticmethod
    async def get_establishment(
        session: AsyncSession,
        establishment_id: int,
    ) -> Establishment | None:
        return await session.get(Establishment, establishment_id)
