"""create revenue ledger tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None

UNIT_CHECK = (
    "(CASE WHEN phase_id IS NULL THEN 0 ELSE 1 END)"
    " + (CASE WHEN program_id IS NULL THEN 0 ELSE 1 END)"
    " + (CASE WHEN order_id IS NULL THEN 0 ELSE 1 END) = 1"
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _unit_columns():
    return [
        sa.Column("phase_id", sa.Uuid(), nullable=True),
        sa.Column("program_id", sa.Uuid(), nullable=True),
        sa.Column("order_id", sa.Uuid(), nullable=True),
    ]


def upgrade() -> None:
    # -----------------------------------------------------
    # 1) split_models
    # -----------------------------------------------------
    op.create_table(
        "split_models",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("percentages", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_split_models_category", "split_models", ["category"], unique=True)

    # -----------------------------------------------------
    # 2) payments
    # -----------------------------------------------------
    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        *_unit_columns(),
        sa.Column("client_id", sa.Uuid(), nullable=True),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("mou_id", sa.Uuid(), nullable=True),
        sa.Column("gross_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("payment_type", sa.String(length=32), nullable=True),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("reference_number", sa.String(length=120), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("department_discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("is_first_milestone", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("held_for_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hold_reason", sa.Text(), nullable=True),
        sa.Column("splits_computed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(UNIT_CHECK, name="ck_payments_exactly_one_unit"),
        sa.CheckConstraint("gross_amount > 0", name="ck_payments_gross_positive"),
        sa.CheckConstraint(
            "department_discount_percent >= 0 AND department_discount_percent <= 100",
            name="ck_payments_discount_range",
        ),
    )
    for col in ("phase_id", "program_id", "order_id", "client_id", "department_id", "mou_id", "status"):
        op.create_index(f"ix_payments_{col}", "payments", [col])
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])

    # -----------------------------------------------------
    # 3) earnings_ledger (amounts immutable after insert)
    # -----------------------------------------------------
    op.create_table(
        "earnings_ledger",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "payment_id",
            sa.Uuid(),
            sa.ForeignKey("payments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("recipient_category", sa.String(length=32), nullable=False),
        sa.Column("recipient_name", sa.String(length=80), nullable=False),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("percentage", sa.Numeric(6, 2), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="calculated"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_earnings_ledger_payment", "earnings_ledger", ["payment_id"])
    op.create_index("ix_earnings_ledger_recipient_status", "earnings_ledger", ["recipient_category", "status"])
    op.create_index("ix_earnings_ledger_department_created", "earnings_ledger", ["department_id", "created_at"])

    # -----------------------------------------------------
    # 4) clients + client_referrals
    # -----------------------------------------------------
    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("partner_status", sa.String(length=32), nullable=False, server_default="standard"),
        sa.Column("partner_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("referral_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("partner_discount", sa.Numeric(4, 2), nullable=False, server_default="0"),
        sa.Column("custom_discount", sa.Numeric(4, 2), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "client_referrals",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "client_id",
            sa.Uuid(),
            sa.ForeignKey("clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("referring_department_id", sa.Uuid(), nullable=False),
        sa.Column("executing_department_id", sa.Uuid(), nullable=False),
        sa.Column("referral_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("first_phase_id", sa.Uuid(), nullable=True),
        sa.Column("bonus_percentage", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("bonus_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bonus_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_client_referrals_client_id", "client_referrals", ["client_id"])

    # -----------------------------------------------------
    # 5) mous
    # -----------------------------------------------------
    op.create_table(
        "mous",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("mou_number", sa.String(length=40), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=True),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        *_unit_columns(),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("deal_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("amc_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("signing_percent", sa.Integer(), nullable=False, server_default="40"),
        sa.Column("deployment_percent", sa.Integer(), nullable=False, server_default="40"),
        sa.Column("acceptance_percent", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("payments_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "signing_percent + deployment_percent + acceptance_percent = 100",
            name="ck_mous_terms_total_100",
        ),
        sa.CheckConstraint(UNIT_CHECK, name="ck_mous_exactly_one_unit"),
        sa.CheckConstraint("deal_value > 0", name="ck_mous_deal_value_positive"),
    )
    op.create_index("ix_mous_mou_number", "mous", ["mou_number"], unique=True)
    op.create_index("ix_mous_client_id", "mous", ["client_id"])


def downgrade() -> None:
    op.drop_index("ix_mous_client_id", table_name="mous")
    op.drop_index("ix_mous_mou_number", table_name="mous")
    op.drop_table("mous")

    op.drop_index("ix_client_referrals_client_id", table_name="client_referrals")
    op.drop_table("client_referrals")
    op.drop_table("clients")

    op.drop_index("ix_earnings_ledger_department_created", table_name="earnings_ledger")
    op.drop_index("ix_earnings_ledger_recipient_status", table_name="earnings_ledger")
    op.drop_index("ix_earnings_ledger_payment", table_name="earnings_ledger")
    op.drop_table("earnings_ledger")

    op.drop_index("ix_payments_status_created", table_name="payments")
    for col in ("status", "mou_id", "department_id", "client_id", "order_id", "program_id", "phase_id"):
        op.drop_index(f"ix_payments_{col}", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_split_models_category", table_name="split_models")
    op.drop_table("split_models")
