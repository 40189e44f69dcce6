from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LeadCreate(BaseModel):
    lead_name: str = Field(min_length=1, max_length=255)
    customer_name: str | None = Field(default=None, max_length=255)
    contact: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)
    type: str | None = Field(default=None, max_length=64)
    company: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    source: str | None = Field(default=None, max_length=64)
    product_interest: str | None = None
    note: str | None = None
    assigned_to: int | None = Field(default=None, gt=0)


class FieldUpdate(BaseModel):
    value: str | int | None = None


class AdminCorrection(BaseModel):
    field: str = Field(min_length=1)
    value: str | None = None


class ConvertToQuotationRequest(BaseModel):
    customer_id: int | str | None = None


class PipelineRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference_no: str
    owner_user_id: int
    assigned_to: int | None
    status: str
    status_label: str
    phase: str
    lead_name: str
    customer_name: str | None
    contact: str | None
    email: str | None
    phone: str | None
    type: str | None
    company: str | None
    location: str | None
    source: str | None
    product_interest: str | None
    note: str | None
    customer_id: int | None
    converted_at: datetime | None
    created_at: datetime
    updated_at: datetime
    row_version: int
    potential_value: Decimal | None = None
