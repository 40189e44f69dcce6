from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CatalogProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str | None = Field(default=None, max_length=128)
    description: str | None = None
    price: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))
    is_active: bool = True


class CatalogProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sku: str | None
    description: str | None
    price: Decimal
    is_active: bool
    created_at: datetime
