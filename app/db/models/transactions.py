from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import AppendOnlyMixin, Base


class Transaction(AppendOnlyMixin, Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "type IN ('RECHARGE','USAGE','REFUND')",
            name="ck_transactions_type",
        ),
        CheckConstraint("balance_before >= 0", name="ck_transactions_balance_before_non_negative"),
        CheckConstraint("balance_after >= 0", name="ck_transactions_balance_after_non_negative"),
        CheckConstraint(
            "(type = 'USAGE' AND balance_after = balance_before - amount) "
            "OR (type IN ('RECHARGE','REFUND') AND balance_after = balance_before + amount)",
            name="ck_transactions_balance_arithmetic",
        ),
        UniqueConstraint("gift_card_id", "sequence", name="uq_transactions_gift_card_sequence"),
        Index("idx_transactions_gift_card_created", "gift_card_id", "created_at"),
        Index("idx_transactions_establishment_created", "establishment_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    gift_card_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("gift_cards.id"),
        nullable=False,
    )
    establishment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("establishments.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
