"""create catalog tables

Revision ID: 202610180002
Revises: 202610180001
Create Date: 2026-10-18 09:10:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180002"
down_revision: str | None = "202610180001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "catalog_service",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_price", sa.Numeric(18, 6), nullable=True),
        sa.Column("tax_rate", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("payment_terms_days", sa.Integer(), nullable=True),
        sa.Column("income_account_id", sa.Uuid(), nullable=True),
        sa.Column("default_recurrence", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["income_account_id"], ["ledger_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_catalog_service_name"),
        sa.CheckConstraint("tax_rate >= 0", name="ck_catalog_service_tax_nonnegative"),
    )
    op.create_index("ix_catalog_service_scope", "catalog_service", ["tenant_id", "is_active"])

    op.create_table(
        "catalog_task_template",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("granularity", sa.String(length=32), nullable=False, server_default="inherit"),
        sa.Column("exact_due_date", sa.Date(), nullable=True),
        sa.Column("due_day_of_month", sa.Integer(), nullable=True),
        sa.Column("due_offset_days", sa.Integer(), nullable=True),
        sa.Column("due_offset_months", sa.Integer(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.ForeignKeyConstraint(["service_id"], ["catalog_service.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "due_day_of_month IS NULL OR (due_day_of_month BETWEEN 1 AND 31)",
            name="ck_catalog_task_template_day",
        ),
    )
    op.create_index("ix_catalog_task_template_service", "catalog_task_template", ["service_id", "sort_order"])

    op.create_table(
        "catalog_customer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("ledger_account_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["ledger_account_id"], ["ledger_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_catalog_customer_scope", "catalog_customer", ["tenant_id", "name"])

    op.create_table(
        "catalog_customer_service_price",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("price", sa.Numeric(18, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["catalog_customer.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["service_id"], ["catalog_service.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("customer_id", "service_id", name="uq_catalog_customer_service_price"),
    )


def downgrade() -> None:
    op.drop_table("catalog_customer_service_price")
    op.drop_index("ix_catalog_customer_scope", table_name="catalog_customer")
    op.drop_table("catalog_customer")
    op.drop_index("ix_catalog_task_template_service", table_name="catalog_task_template")
    op.drop_table("catalog_task_template")
    op.drop_index("ix_catalog_service_scope", table_name="catalog_service")
    op.drop_table("catalog_service")
