from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Commission(Base):
    __tablename__ = "commissions"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_commissions_amount_non_negative"),
        CheckConstraint("rate >= 0 AND rate <= 100", name="ck_commissions_rate_range"),
        CheckConstraint(
            "status IN ('PENDING','CHARGED','PAID','FAILED')",
            name="ck_commissions_status",
        ),
        CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('PIX','BOLETO','CREDIT_CARD')",
            name="ck_commissions_payment_method",
        ),
        CheckConstraint(
            "failure_reason IS NULL OR failure_reason IN "
            "('GATEWAY_ERROR','PAYMENT_DELETED','PAYMENT_REFUNDED','OPERATOR_CANCELLED')",
            name="ck_commissions_failure_reason",
        ),
        CheckConstraint(
            "(status = 'PAID') = (paid_at IS NOT NULL)",
            name="ck_commissions_paid_at_consistency",
        ),
        CheckConstraint("charge_attempts >= 0", name="ck_commissions_charge_attempts_non_negative"),
        Index("idx_commissions_franchise_status", "franchise_id", "status"),
        Index("idx_commissions_establishment_status", "establishment_id", "status"),
        Index(
            "idx_commissions_pending_created_at",
            "created_at",
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    franchise_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("franchises.id"), nullable=False)
    establishment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("establishments.id"),
        nullable=False,
    )
    transaction_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("transactions.id"),
        unique=True,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    charge_ref: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    charge_attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
