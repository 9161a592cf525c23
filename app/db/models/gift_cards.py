from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class GiftCard(Base):
    __tablename__ = "gift_cards"
    __table_args__ = (
        CheckConstraint("initial_value > 0", name="ck_gift_cards_initial_value_positive"),
        CheckConstraint(
            "current_balance >= 0 AND current_balance <= initial_value",
            name="ck_gift_cards_balance_bounds",
        ),
        CheckConstraint(
            "status IN ('ACTIVE','USED','EXPIRED','CANCELLED')",
            name="ck_gift_cards_status",
        ),
        CheckConstraint(
            "code ~ '^GC-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$'",
            name="ck_gift_cards_code_format",
        ),
        Index("idx_gift_cards_establishment_created", "establishment_id", "created_at"),
        Index("idx_gift_cards_franchise", "franchise_id"),
        Index(
            "idx_gift_cards_active_valid_until",
            "valid_until",
            postgresql_where=text("status = 'ACTIVE' AND valid_until IS NOT NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    code: Mapped[str] = mapped_column(String(22), unique=True, nullable=False)
    franchise_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("franchises.id"), nullable=False)
    establishment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("establishments.id"),
        nullable=False,
    )
    initial_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sequence: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
