from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ProcessedPaymentEvent(Base):
    __tablename__ = "processed_payment_events"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PROCESSING','PROCESSED','FAILED')",
            name="ck_processed_payment_events_status",
        ),
        Index("idx_processed_payment_events_processed_at", "processed_at"),
        Index(
            "idx_processed_payment_events_processing_age",
            "processed_at",
            postgresql_where=text("status = 'PROCESSING'"),
        ),
    )

    charge_ref: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_kind: Mapped[str] = mapped_column(String(64), primary_key=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    processing_task_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
