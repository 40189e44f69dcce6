from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salesflow.business.revenue.schemas import QuotationRead
from salesflow.core.auth import get_current_principal
from salesflow.core.database import get_db
from salesflow.pipeline.conversion import conversion_service
from salesflow.pipeline.schemas import (
    AdminCorrection,
    ConvertToQuotationRequest,
    FieldUpdate,
    LeadCreate,
    PipelineRecordRead,
)
from salesflow.pipeline.service import pipeline_service
from salesflow.pipeline.statuses import StatusKind, status_options
from salesflow.platform.security.context import Principal
from salesflow.platform.security.roles import Domain


leads_router = APIRouter(tags=["pipeline.leads"])
opportunities_router = APIRouter(tags=["pipeline.opportunities"])
records_router = APIRouter(prefix="/records", tags=["pipeline.records"])


@leads_router.post("/leads", response_model=PipelineRecordRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> PipelineRecordRead:
    return pipeline_service.create_lead(db, principal, dto)


@leads_router.get("/leads", response_model=list[PipelineRecordRead])
def list_leads(
    status_filter: str | None = Query(default=None, alias="status"),
    source: str | None = Query(default=None),
    owner_user_id: int | None = Query(default=None),
    q: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> list[PipelineRecordRead]:
    return pipeline_service.list_records(
        db,
        principal,
        Domain.LEADS,
        status=status_filter,
        source=source,
        owner_user_id=owner_user_id,
        q=q,
        offset=offset,
        limit=limit,
    )


@leads_router.post("/leads/{record_id}/convert", response_model=PipelineRecordRead)
def convert_lead(
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> PipelineRecordRead:
    return conversion_service.convert_lead_to_opportunity(db, principal, record_id)


@opportunities_router.get("/opportunities", response_model=list[PipelineRecordRead])
def list_opportunities(
    status_filter: str | None = Query(default=None, alias="status"),
    source: str | None = Query(default=None),
    owner_user_id: int | None = Query(default=None),
    q: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> list[PipelineRecordRead]:
    return pipeline_service.list_records(
        db,
        principal,
        Domain.OPPORTUNITIES,
        status=status_filter,
        source=source,
        owner_user_id=owner_user_id,
        q=q,
        offset=offset,
        limit=limit,
    )


@opportunities_router.post(
    "/opportunities/{record_id}/convert-sq",
    response_model=QuotationRead,
    status_code=status.HTTP_201_CREATED,
)
def convert_opportunity(
    record_id: int,
    dto: ConvertToQuotationRequest | None = None,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> QuotationRead:
    customer_id = dto.customer_id if dto is not None else None
    return conversion_service.convert_opportunity_to_quotation(db, principal, record_id, customer_id)


@records_router.get("/status-options", tags=["pipeline.records"])
def list_status_options(kind: StatusKind = Query(default=StatusKind.PIPELINE)) -> list[dict[str, str]]:
    return status_options(kind)


@records_router.get("/{record_id}", response_model=PipelineRecordRead)
def get_record(
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> PipelineRecordRead:
    return pipeline_service.get_record(db, principal, record_id)


@records_router.patch("/{record_id}/fields/{field_name}", response_model=PipelineRecordRead)
def update_field(
    record_id: int,
    field_name: str,
    dto: FieldUpdate,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> PipelineRecordRead:
    return pipeline_service.update_field(db, principal, record_id, field_name, dto.value)


@records_router.post("/{record_id}/admin-correction", response_model=PipelineRecordRead)
def correct_customer_info(
    record_id: int,
    dto: AdminCorrection,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> PipelineRecordRead:
    return pipeline_service.correct_customer_info(db, principal, record_id, dto.field, dto.value)


@records_router.delete("/{record_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_record(
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_current_principal),
) -> dict[str, str]:
    pipeline_service.delete_record(db, principal, record_id)
    return {"status": "deleted"}
