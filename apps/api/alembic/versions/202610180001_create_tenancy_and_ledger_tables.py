"""create tenancy and ledger tables

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tenant_settings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False, server_default="INR"),
        sa.Column("invoice_prefix", sa.String(length=32), nullable=False, server_default="INV"),
        sa.Column("invoice_suffix", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("invoice_number_width", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("invoice_zero_pad", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("invoice_starting_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("voucher_numbering_json", sa.JSON(), nullable=True),
        sa.Column("default_income_account_id", sa.Uuid(), nullable=True),
        sa.Column("default_cash_account_id", sa.Uuid(), nullable=True),
        sa.Column("fiscal_year_start_month", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("unmapped_income_policy", sa.String(length=16), nullable=False, server_default="allow"),
        sa.Column("lookahead_periods", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("default_payment_terms_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", name="uq_tenant_settings_tenant"),
        sa.CheckConstraint("fiscal_year_start_month BETWEEN 1 AND 12", name="ck_tenant_settings_fiscal_month"),
        sa.CheckConstraint("invoice_number_width >= 1", name="ck_tenant_settings_invoice_width"),
        sa.CheckConstraint("lookahead_periods >= 0", name="ck_tenant_settings_lookahead"),
    )

    op.create_table(
        "ledger_account",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("parent_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("is_group", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("opening_balance", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("current_balance", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["ledger_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_ledger_account_code"),
    )
    op.create_index("ix_ledger_account_scope", "ledger_account", ["tenant_id", "type"])

    op.create_table(
        "ledger_voucher",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("voucher_type", sa.String(length=32), nullable=False),
        sa.Column("voucher_number", sa.String(length=64), nullable=False),
        sa.Column("voucher_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("narration", sa.Text(), nullable=True),
        sa.Column("source_type", sa.String(length=64), nullable=True),
        sa.Column("source_id", sa.String(length=128), nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "voucher_number", name="uq_ledger_voucher_number"),
    )
    op.create_index(
        "ix_ledger_voucher_scope_date",
        "ledger_voucher",
        ["tenant_id", "voucher_type", "voucher_date"],
    )
    op.create_index("ix_ledger_voucher_source", "ledger_voucher", ["tenant_id", "source_type", "source_id"])

    op.create_table(
        "ledger_voucher_entry",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("voucher_id", sa.Uuid(), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("debit_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("credit_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("narration", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["voucher_id"], ["ledger_voucher.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["ledger_account.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("debit_amount >= 0", name="ck_ledger_voucher_entry_debit_nonnegative"),
        sa.CheckConstraint("credit_amount >= 0", name="ck_ledger_voucher_entry_credit_nonnegative"),
        sa.CheckConstraint(
            "((debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0))",
            name="ck_ledger_voucher_entry_single_sided",
        ),
    )

    op.create_table(
        "ledger_transaction",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("voucher_id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("debit", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("credit", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("narration", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["voucher_id"], ["ledger_voucher.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["ledger_account.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("debit >= 0", name="ck_ledger_transaction_debit_nonnegative"),
        sa.CheckConstraint("credit >= 0", name="ck_ledger_transaction_credit_nonnegative"),
        sa.CheckConstraint(
            "((debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0))",
            name="ck_ledger_transaction_single_sided",
        ),
    )
    op.create_index(
        "ix_ledger_transaction_account_date",
        "ledger_transaction",
        ["account_id", "transaction_date"],
    )
    op.create_index("ix_ledger_transaction_voucher", "ledger_transaction", ["voucher_id"])


def downgrade() -> None:
    op.drop_index("ix_ledger_transaction_voucher", table_name="ledger_transaction")
    op.drop_index("ix_ledger_transaction_account_date", table_name="ledger_transaction")
    op.drop_table("ledger_transaction")
    op.drop_table("ledger_voucher_entry")
    op.drop_index("ix_ledger_voucher_source", table_name="ledger_voucher")
    op.drop_index("ix_ledger_voucher_scope_date", table_name="ledger_voucher")
    op.drop_table("ledger_voucher")
    op.drop_index("ix_ledger_account_scope", table_name="ledger_account")
    op.drop_table("ledger_account")
    op.drop_table("tenant_settings")
