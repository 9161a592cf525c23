from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class GatewayCustomer(Base):
    __tablename__ = "gateway_customers"

    establishment_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("establishments.id"),
        primary_key=True,
    )
    customer_ref: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
