from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salesflow.business.catalog.schemas import CatalogProductCreate, CatalogProductRead
from salesflow.business.catalog.service import catalog_service
from salesflow.core.auth import get_current_principal
from salesflow.core.database import get_db
from salesflow.platform.security.context import Principal


router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/products", response_model=CatalogProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    dto: CatalogProductCreate,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> CatalogProductRead:
    return catalog_service.create_product(db, principal, dto)


@router.get("/products", response_model=list[CatalogProductRead])
def list_products(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> list[CatalogProductRead]:
    return catalog_service.list_products(db, principal, active_only=not include_inactive)
