"""create works and billing tables

Revision ID: 202610180003
Revises: 202610180002
Create Date: 2026-10-18 09:20:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180003"
down_revision: str | None = "202610180002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


ACTIVE_PERIOD_INVOICE = "period_id IS NOT NULL AND status <> 'cancelled'"
ACTIVE_WORK_INVOICE = "work_id IS NOT NULL AND period_id IS NULL AND status <> 'cancelled'"


def upgrade() -> None:
    op.create_table(
        "works_work",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recurrence_pattern", sa.String(length=32), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("anchor_type", sa.String(length=16), nullable=False, server_default="current"),
        sa.Column("assigned_to", sa.String(length=128), nullable=True),
        sa.Column("billing_amount", sa.Numeric(18, 6), nullable=True),
        sa.Column("auto_bill", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("billing_status", sa.String(length=32), nullable=False, server_default="not_billed"),
        sa.Column("invoice_id", sa.Uuid(), nullable=True),
        sa.Column("last_backfill_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["catalog_customer.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["service_id"], ["catalog_service.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('pending','in_progress','completed','cancelled')", name="ck_works_work_status"),
        sa.CheckConstraint("billing_status IN ('not_billed','billed','paid')", name="ck_works_work_billing_status"),
        sa.CheckConstraint("anchor_type IN ('current','previous','next')", name="ck_works_work_anchor"),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_works_work_dates"),
    )
    op.create_index("ix_works_work_scope", "works_work", ["tenant_id", "status"])
    op.create_index("ix_works_work_customer", "works_work", ["tenant_id", "customer_id"])

    op.create_table(
        "works_work_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("work_id", sa.Uuid(), nullable=False),
        sa.Column("task_template_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["work_id"], ["works_work.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_template_id"], ["catalog_task_template.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('pending','in_progress','completed')", name="ck_works_work_task_status"),
    )
    op.create_index("ix_works_work_task_work", "works_work_task", ["work_id", "sort_order"])

    op.create_table(
        "works_work_document",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("work_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_collected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["work_id"], ["works_work.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "works_recurring_period",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("work_id", sa.Uuid(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("total_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("all_tasks_completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("withheld_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("billing_amount", sa.Numeric(18, 6), nullable=True),
        sa.Column("is_billed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("invoice_id", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["work_id"], ["works_work.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("work_id", "period_start", name="uq_works_period_start"),
        sa.CheckConstraint("period_end >= period_start", name="ck_works_period_bounds"),
        sa.CheckConstraint("status IN ('pending','overdue','completed')", name="ck_works_period_status"),
    )
    op.create_index("ix_works_period_scope", "works_recurring_period", ["tenant_id", "status"])

    op.create_table(
        "works_period_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("period_id", sa.Uuid(), nullable=False),
        sa.Column("task_template_id", sa.Uuid(), nullable=True),
        sa.Column("instance_key", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["period_id"], ["works_recurring_period.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_template_id"], ["catalog_task_template.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_id", "task_template_id", "instance_key", name="uq_works_period_task_instance"),
        sa.CheckConstraint("status IN ('pending','in_progress','completed')", name="ck_works_period_task_status"),
    )
    op.create_index("ix_works_period_task_due", "works_period_task", ["period_id", "due_date"])

    op.create_table(
        "works_period_document",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("period_id", sa.Uuid(), nullable=False),
        sa.Column("work_document_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_collected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["period_id"], ["works_recurring_period.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["work_document_id"], ["works_work_document.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_id", "work_document_id", name="uq_works_period_document"),
    )

    op.create_table(
        "billing_invoice",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("work_id", sa.Uuid(), nullable=True),
        sa.Column("period_id", sa.Uuid(), nullable=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("subtotal", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("income_account_id", sa.Uuid(), nullable=True),
        sa.Column("customer_account_id", sa.Uuid(), nullable=True),
        sa.Column("origin", sa.String(length=16), nullable=False, server_default="manual"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["catalog_customer.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["work_id"], ["works_work.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["period_id"], ["works_recurring_period.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["income_account_id"], ["ledger_account.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["customer_account_id"], ["ledger_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_billing_invoice_number"),
        sa.CheckConstraint(
            "status IN ('draft','sent','paid','overdue','cancelled')",
            name="ck_billing_invoice_status",
        ),
        sa.CheckConstraint("origin IN ('auto','manual')", name="ck_billing_invoice_origin"),
    )
    op.create_index(
        "uq_billing_invoice_active_period",
        "billing_invoice",
        ["period_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_PERIOD_INVOICE),
        sqlite_where=sa.text(ACTIVE_PERIOD_INVOICE),
    )
    op.create_index(
        "uq_billing_invoice_active_work",
        "billing_invoice",
        ["work_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_WORK_INVOICE),
        sqlite_where=sa.text(ACTIVE_WORK_INVOICE),
    )
    op.create_index("ix_billing_invoice_scope_status", "billing_invoice", ["tenant_id", "status", "due_date"])
    op.create_index("ix_billing_invoice_customer", "billing_invoice", ["tenant_id", "customer_id"])

    op.create_table(
        "billing_invoice_line",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("tax_rate", sa.Numeric(9, 4), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["billing_invoice.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_id", "line_no", name="uq_billing_invoice_line_no"),
        sa.CheckConstraint("quantity > 0", name="ck_billing_invoice_line_quantity"),
    )
    op.create_index("ix_billing_invoice_line_invoice", "billing_invoice_line", ["invoice_id"])


def downgrade() -> None:
    op.drop_index("ix_billing_invoice_line_invoice", table_name="billing_invoice_line")
    op.drop_table("billing_invoice_line")
    op.drop_index("ix_billing_invoice_customer", table_name="billing_invoice")
    op.drop_index("ix_billing_invoice_scope_status", table_name="billing_invoice")
    op.drop_index("uq_billing_invoice_active_work", table_name="billing_invoice")
    op.drop_index("uq_billing_invoice_active_period", table_name="billing_invoice")
    op.drop_table("billing_invoice")
    op.drop_table("works_period_document")
    op.drop_index("ix_works_period_task_due", table_name="works_period_task")
    op.drop_table("works_period_task")
    op.drop_index("ix_works_period_scope", table_name="works_recurring_period")
    op.drop_table("works_recurring_period")
    op.drop_table("works_work_document")
    op.drop_index("ix_works_work_task_work", table_name="works_work_task")
    op.drop_table("works_work_task")
    op.drop_index("ix_works_work_customer", table_name="works_work")
    op.drop_index("ix_works_work_scope", table_name="works_work")
    op.drop_table("works_work")
