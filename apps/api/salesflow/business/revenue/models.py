from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salesflow.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Quotation(Base):
    __tablename__ = "sales_quotation"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    quotation_no: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    source_record_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pipeline_record.id"),
        nullable=False,
        unique=True,
    )
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_customer.id"), nullable=False)
    owner_user_id: Mapped[int] = mapped_column("user_id", Integer, nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", server_default="draft")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    tax: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    lines: Mapped[list[QuotationLine]] = relationship(
        "salesflow.business.revenue.models.QuotationLine",
        back_populates="quotation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuotationLine.line_no",
    )

    __table_args__ = (
        Index("ix_sales_quotation_scope", "status", "user_id", "assigned_to"),
    )


class QuotationLine(Base):
    __tablename__ = "sales_quotation_line"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    quotation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sales_quotation.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("catalog_product.id"), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    quotation: Mapped[Quotation] = relationship("salesflow.business.revenue.models.Quotation", back_populates="lines")

    __table_args__ = (
        Index("ix_sales_quotation_line_quotation_id", "quotation_id"),
    )


class SalesOrder(Base):
    __tablename__ = "sales_order"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sale_no: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    quotation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sales_quotation.id"),
        nullable=False,
        unique=True,
    )
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_customer.id"), nullable=False)
    owner_user_id: Mapped[int] = mapped_column("user_id", Integer, nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", server_default="draft")
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default="unpaid", server_default="unpaid")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    discount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    tax: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    lines: Mapped[list[SalesOrderLine]] = relationship(
        "salesflow.business.revenue.models.SalesOrderLine",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SalesOrderLine.line_no",
    )

    __table_args__ = (
        Index("ix_sales_order_scope", "status", "user_id", "assigned_to"),
    )


class SalesOrderLine(Base):
    __tablename__ = "sales_order_line"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sales_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sales_order.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("catalog_product.id"), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    sales_order: Mapped[SalesOrder] = relationship("salesflow.business.revenue.models.SalesOrder", back_populates="lines")

    __table_args__ = (
        Index("ix_sales_order_line_sales_order_id", "sales_order_id"),
    )
