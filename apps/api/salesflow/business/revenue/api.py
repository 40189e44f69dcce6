from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from salesflow.api.errors import error_response
from salesflow.business.revenue.schemas import (
    PaymentStatusChange,
    QuotationRead,
    SalesOrderRead,
    SalesOrderStatusChange,
)
from salesflow.business.revenue.service import MANUAL_SALES_ORDER_MESSAGE, revenue_service
from salesflow.core.auth import get_current_principal
from salesflow.core.database import get_db
from salesflow.pipeline.conversion import conversion_service
from salesflow.platform.security.context import Principal


quotations_router = APIRouter(prefix="/quotations", tags=["revenue.quotations"])
sales_orders_router = APIRouter(prefix="/sales-orders", tags=["revenue.sales_orders"])


@quotations_router.get("", response_model=list[QuotationRead])
def list_quotations(
    status_filter: str | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> list[QuotationRead]:
    return revenue_service.list_quotations(db, principal, status=status_filter, offset=offset, limit=limit)


@quotations_router.get("/{quotation_id}", response_model=QuotationRead)
def get_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    return revenue_service.get_quotation(db, principal, quotation_id)


@quotations_router.post("/{quotation_id}/submit", response_model=QuotationRead)
def submit_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    return revenue_service.submit_quotation(db, principal, quotation_id)


@quotations_router.post("/{quotation_id}/approve", response_model=QuotationRead)
def approve_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    return revenue_service.approve_quotation(db, principal, quotation_id)


@quotations_router.post("/{quotation_id}/reject", response_model=QuotationRead)
def reject_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    return revenue_service.reject_quotation(db, principal, quotation_id)


@quotations_router.post("/{quotation_id}/revise", response_model=QuotationRead)
def revise_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    return revenue_service.revise_quotation(db, principal, quotation_id)


@quotations_router.post(
    "/{quotation_id}/convert-so",
    response_model=SalesOrderRead,
    status_code=status.HTTP_201_CREATED,
)
def convert_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> SalesOrderRead:
    return conversion_service.convert_quotation_to_sales_order(db, principal, quotation_id)


@sales_orders_router.post("", response_model=None)
def create_sales_order(request: Request) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        code="manual_sales_order_not_allowed",
        message=MANUAL_SALES_ORDER_MESSAGE,
    )


@sales_orders_router.get("", response_model=list[SalesOrderRead])
def list_sales_orders(
    status_filter: str | None = Query(default=None, alias="status"),
    payment_status: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> list[SalesOrderRead]:
    return revenue_service.list_sales_orders(
        db,
        principal,
        status=status_filter,
        payment_status=payment_status,
        offset=offset,
        limit=limit,
    )


@sales_orders_router.get("/{sales_order_id}", response_model=SalesOrderRead)
def get_sales_order(
    sales_order_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> SalesOrderRead:
    return revenue_service.get_sales_order(db, principal, sales_order_id)


@sales_orders_router.post("/{sales_order_id}/status", response_model=SalesOrderRead)
def change_sales_order_status(
    sales_order_id: int,
    dto: SalesOrderStatusChange,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> SalesOrderRead:
    return revenue_service.transition_sales_order(db, principal, sales_order_id, dto.status)


@sales_orders_router.post("/{sales_order_id}/payment", response_model=SalesOrderRead)
def change_payment_status(
    sales_order_id: int,
    dto: PaymentStatusChange,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> SalesOrderRead:
    return revenue_service.set_payment_status(db, principal, sales_order_id, dto.payment_status)
