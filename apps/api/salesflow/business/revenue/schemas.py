from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class QuotationLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quotation_id: int
    line_no: int
    product_id: int | None
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class QuotationRead(BaseModel):
    id: int
    quotation_no: str
    source_record_id: int
    customer_id: int
    owner_user_id: int
    assigned_to: int | None
    status: str
    status_label: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    note: str | None
    created_by: int
    created_at: datetime
    updated_at: datetime
    row_version: int
    lines: list[QuotationLineRead] = Field(default_factory=list)


class SalesOrderLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sales_order_id: int
    line_no: int
    product_id: int | None
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class SalesOrderRead(BaseModel):
    id: int
    sale_no: str
    quotation_id: int
    customer_id: int
    owner_user_id: int
    assigned_to: int | None
    status: str
    status_label: str
    payment_status: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    note: str | None
    created_by: int
    created_at: datetime
    updated_at: datetime
    row_version: int
    lines: list[SalesOrderLineRead] = Field(default_factory=list)


class SalesOrderStatusChange(BaseModel):
    status: str = Field(min_length=1)


class PaymentStatusChange(BaseModel):
    payment_status: str = Field(min_length=1)
