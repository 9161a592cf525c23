"""gift_card_ledger_core

Revision ID: 0c1d2e3f4a5b
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0c1d2e3f4a5b"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "franchises",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_franchises_commission_rate_range",
        ),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_franchises_status"),
    )

    op.create_table(
        "establishments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("franchise_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("document", sa.String(32), nullable=False),
        sa.Column("email", sa.String(254), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_establishments_status"),
        sa.ForeignKeyConstraint(["franchise_id"], ["franchises.id"]),
    )
    op.create_index("idx_establishments_franchise", "establishments", ["franchise_id"])

    op.create_table(
        "gateway_customers",
        sa.Column("establishment_id", sa.BigInteger(), primary_key=True),
        sa.Column("customer_ref", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["establishment_id"], ["establishments.id"]),
        sa.UniqueConstraint("customer_ref", name="uq_gateway_customers_customer_ref"),
    )

    op.create_table(
        "gift_cards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(22), nullable=False),
        sa.Column("franchise_id", sa.BigInteger(), nullable=False),
        sa.Column("establishment_id", sa.BigInteger(), nullable=False),
        sa.Column("initial_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("current_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sequence", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("initial_value > 0", name="ck_gift_cards_initial_value_positive"),
        sa.CheckConstraint(
            "current_balance >= 0 AND current_balance <= initial_value",
            name="ck_gift_cards_balance_bounds",
        ),
        sa.CheckConstraint(
            "status IN ('ACTIVE','USED','EXPIRED','CANCELLED')",
            name="ck_gift_cards_status",
        ),
        sa.CheckConstraint(
            "code ~ '^GC-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$'",
            name="ck_gift_cards_code_format",
        ),
        sa.ForeignKeyConstraint(["franchise_id"], ["franchises.id"]),
        sa.ForeignKeyConstraint(["establishment_id"], ["establishments.id"]),
        sa.UniqueConstraint("code", name="uq_gift_cards_code"),
    )
    op.create_index(
        "idx_gift_cards_establishment_created",
        "gift_cards",
        ["establishment_id", "created_at"],
    )
    op.create_index("idx_gift_cards_franchise", "gift_cards", ["franchise_id"])
    op.create_index(
        "idx_gift_cards_active_valid_until",
        "gift_cards",
        ["valid_until"],
        postgresql_where=sa.text("status = 'ACTIVE' AND valid_until IS NOT NULL"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("gift_card_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("establishment_id", sa.BigInteger(), nullable=False),
        sa.Column("sequence", sa.BigInteger(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint("type IN ('RECHARGE','USAGE','REFUND')", name="ck_transactions_type"),
        sa.CheckConstraint("balance_before >= 0", name="ck_transactions_balance_before_non_negative"),
        sa.CheckConstraint("balance_after >= 0", name="ck_transactions_balance_after_non_negative"),
        sa.CheckConstraint(
            "(type = 'USAGE' AND balance_after = balance_before - amount) "
            "OR (type IN ('RECHARGE','REFUND') AND balance_after = balance_before + amount)",
            name="ck_transactions_balance_arithmetic",
        ),
        sa.ForeignKeyConstraint(["gift_card_id"], ["gift_cards.id"]),
        sa.ForeignKeyConstraint(["establishment_id"], ["establishments.id"]),
        sa.UniqueConstraint("gift_card_id", "sequence", name="uq_transactions_gift_card_sequence"),
    )
    op.create_index(
        "idx_transactions_gift_card_created",
        "transactions",
        ["gift_card_id", "created_at"],
    )
    op.create_index(
        "idx_transactions_establishment_created",
        "transactions",
        ["establishment_id", "created_at"],
    )
    op.execute(
        """
        CREATE FUNCTION reject_transactions_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'transactions is append-only' USING ERRCODE = 'restrict_violation';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_transactions_append_only
        BEFORE UPDATE OR DELETE ON transactions
        FOR EACH ROW EXECUTE FUNCTION reject_transactions_mutation();
        """
    )

    op.create_table(
        "commissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("franchise_id", sa.BigInteger(), nullable=False),
        sa.Column("establishment_id", sa.BigInteger(), nullable=False),
        sa.Column("transaction_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("charge_ref", sa.String(64), nullable=True),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("invoice_url", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.String(32), nullable=True),
        sa.Column("charge_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_commissions_amount_non_negative"),
        sa.CheckConstraint("rate >= 0 AND rate <= 100", name="ck_commissions_rate_range"),
        sa.CheckConstraint(
            "status IN ('PENDING','CHARGED','PAID','FAILED')",
            name="ck_commissions_status",
        ),
        sa.CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('PIX','BOLETO','CREDIT_CARD')",
            name="ck_commissions_payment_method",
        ),
        sa.CheckConstraint(
            "failure_reason IS NULL OR failure_reason IN "
            "('GATEWAY_ERROR','PAYMENT_DELETED','PAYMENT_REFUNDED','OPERATOR_CANCELLED')",
            name="ck_commissions_failure_reason",
        ),
        sa.CheckConstraint(
            "(status = 'PAID') = (paid_at IS NOT NULL)",
            name="ck_commissions_paid_at_consistency",
        ),
        sa.CheckConstraint("charge_attempts >= 0", name="ck_commissions_charge_attempts_non_negative"),
        sa.ForeignKeyConstraint(["franchise_id"], ["franchises.id"]),
        sa.ForeignKeyConstraint(["establishment_id"], ["establishments.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
        sa.UniqueConstraint("transaction_id", name="uq_commissions_transaction_id"),
        sa.UniqueConstraint("charge_ref", name="uq_commissions_charge_ref"),
    )
    op.create_index("idx_commissions_franchise_status", "commissions", ["franchise_id", "status"])
    op.create_index(
        "idx_commissions_establishment_status",
        "commissions",
        ["establishment_id", "status"],
    )
    op.create_index(
        "idx_commissions_pending_created_at",
        "commissions",
        ["created_at"],
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "processed_payment_events",
        sa.Column("charge_ref", sa.String(64), nullable=False),
        sa.Column("event_kind", sa.String(64), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("processing_task_id", sa.String(64), nullable=True),
        sa.CheckConstraint(
            "status IN ('PROCESSING','PROCESSED','FAILED')",
            name="ck_processed_payment_events_status",
        ),
        sa.PrimaryKeyConstraint("charge_ref", "event_kind", name="pk_processed_payment_events"),
    )
    op.create_index(
        "idx_processed_payment_events_processed_at",
        "processed_payment_events",
        ["processed_at"],
    )
    op.create_index(
        "idx_processed_payment_events_processing_age",
        "processed_payment_events",
        ["processed_at"],
        postgresql_where=sa.text("status = 'PROCESSING'"),
    )

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_outbox_events_type_created", "outbox_events", ["event_type", "created_at"])
    op.create_index("idx_outbox_events_status_created", "outbox_events", ["status", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_outbox_events_status_created", table_name="outbox_events")
    op.drop_index("idx_outbox_events_type_created", table_name="outbox_events")
    op.drop_table("outbox_events")
    op.drop_index("idx_processed_payment_events_processing_age", table_name="processed_payment_events")
    op.drop_index("idx_processed_payment_events_processed_at", table_name="processed_payment_events")
    op.drop_table("processed_payment_events")
    op.drop_index("idx_commissions_pending_created_at", table_name="commissions")
    op.drop_index("idx_commissions_establishment_status", table_name="commissions")
    op.drop_index("idx_commissions_franchise_status", table_name="commissions")
    op.drop_table("commissions")
    op.execute("DROP TRIGGER IF EXISTS trg_transactions_append_only ON transactions")
    op.execute("DROP FUNCTION IF EXISTS reject_transactions_mutation()")
    op.drop_index("idx_transactions_establishment_created", table_name="transactions")
    op.drop_index("idx_transactions_gift_card_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("idx_gift_cards_active_valid_until", table_name="gift_cards")
    op.drop_index("idx_gift_cards_franchise", table_name="gift_cards")
    op.drop_index("idx_gift_cards_establishment_created", table_name="gift_cards")
    op.drop_table("gift_cards")
    op.drop_table("gateway_customers")
    op.drop_index("idx_establishments_franchise", table_name="establishments")
    op.drop_table("establishments")
    op.drop_table("franchises")
