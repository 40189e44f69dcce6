"""create sales pipeline tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "crm_customer",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_customer_name", "crm_customer", ["name"])
    op.create_index("ix_crm_customer_email", "crm_customer", ["email"])

    op.create_table(
        "catalog_product",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sku", sa.String(length=128), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_catalog_product_sku"),
        sa.UniqueConstraint("name", name="uq_catalog_product_name"),
    )

    op.create_table(
        "pipeline_record",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reference_no", sa.String(length=32), nullable=False),
        sa.Column("id_user", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="lead_new"),
        sa.Column("lead_name", sa.String(length=255), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("contact", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("product_interest", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_no", name="uq_pipeline_record_reference_no"),
    )
    op.create_index("ix_pipeline_record_scope", "pipeline_record", ["status", "id_user", "assigned_to"])
    op.create_index("ix_pipeline_record_email", "pipeline_record", ["email"])

    op.create_table(
        "sales_quotation",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("quotation_no", sa.String(length=32), nullable=False),
        sa.Column("source_record_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("subtotal", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("tax", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["source_record_id"], ["pipeline_record.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["crm_customer.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quotation_no", name="uq_sales_quotation_no"),
        sa.UniqueConstraint("source_record_id", name="uq_sales_quotation_source_record"),
    )
    op.create_index("ix_sales_quotation_scope", "sales_quotation", ["status", "user_id", "assigned_to"])

    op.create_table(
        "sales_quotation_line",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("quotation_id", sa.Integer(), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(18, 2), nullable=False),
        sa.ForeignKeyConstraint(["quotation_id"], ["sales_quotation.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_quotation_line_quotation_id", "sales_quotation_line", ["quotation_id"])

    op.create_table(
        "sales_order",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sale_no", sa.String(length=32), nullable=False),
        sa.Column("quotation_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("payment_status", sa.String(length=32), nullable=False, server_default="unpaid"),
        sa.Column("subtotal", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("tax", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["quotation_id"], ["sales_quotation.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["crm_customer.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_no", name="uq_sales_order_sale_no"),
        sa.UniqueConstraint("quotation_id", name="uq_sales_order_quotation"),
    )
    op.create_index("ix_sales_order_scope", "sales_order", ["status", "user_id", "assigned_to"])

    op.create_table(
        "sales_order_line",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sales_order_id", sa.Integer(), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(18, 2), nullable=False),
        sa.ForeignKeyConstraint(["sales_order_id"], ["sales_order.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["catalog_product.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_order_line_sales_order_id", "sales_order_line", ["sales_order_id"])

    op.create_table(
        "user_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("activity", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_log_id", "user_log", ["id"])
    op.create_index("ix_user_log_entity", "user_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_user_log_entity", table_name="user_log")
    op.drop_index("ix_user_log_id", table_name="user_log")
    op.drop_table("user_log")
    op.drop_index("ix_sales_order_line_sales_order_id", table_name="sales_order_line")
    op.drop_table("sales_order_line")
    op.drop_index("ix_sales_order_scope", table_name="sales_order")
    op.drop_table("sales_order")
    op.drop_index("ix_sales_quotation_line_quotation_id", table_name="sales_quotation_line")
    op.drop_table("sales_quotation_line")
    op.drop_index("ix_sales_quotation_scope", table_name="sales_quotation")
    op.drop_table("sales_quotation")
    op.drop_index("ix_pipeline_record_email", table_name="pipeline_record")
    op.drop_index("ix_pipeline_record_scope", table_name="pipeline_record")
    op.drop_table("pipeline_record")
    op.drop_table("catalog_product")
    op.drop_index("ix_crm_customer_email", table_name="crm_customer")
    op.drop_index("ix_crm_customer_name", table_name="crm_customer")
    op.drop_table("crm_customer")
