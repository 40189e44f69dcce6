"""Conversion engine: the only way a record moves Lead -> Opportunity -> SQ -> SO.

Every conversion runs its preconditions before touching the database and
then performs a single transaction. The source row is advanced with a
conditional UPDATE guarded by its stage and ``row_version``; a guard that
matches no row means another request converted it first.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from salesflow.core import events
from salesflow.business.revenue.models import Quotation, QuotationLine, SalesOrder, SalesOrderLine
from salesflow.business.revenue.schemas import QuotationRead, SalesOrderRead
from salesflow.business.revenue.service import revenue_service
from salesflow.metrics import observe_conversion
from salesflow.otel import pipeline_span
from salesflow.pipeline.models import Customer, PipelineRecord
from salesflow.pipeline.pricing import estimate_total, price_product_interest
from salesflow.pipeline.schemas import PipelineRecordRead
from salesflow.pipeline.service import pipeline_service, snapshot
from salesflow.pipeline.statuses import (
    LeadStatus,
    OpportunityStatus,
    PaymentStatus,
    QuotationStatus,
    SalesOrderStatus,
    StatusKind,
    canonicalize,
    canonicalize_pipeline,
)
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import (
    ConflictOnConvert,
    Forbidden,
    InvalidTransition,
    NotFoundError,
    PipelineError,
    Unauthorized,
    ValidationError,
)
from salesflow.platform.security.rls import is_owner_or_assignee
from salesflow.platform.security.roles import Domain, classify
from salesflow.services.audit import write_user_log
from salesflow.services.numbering import next_document_number


logger = logging.getLogger("salesflow.pipeline")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _conversion_scope(conversion: str, source_id: int, principal: Principal | None) -> Iterator[Any]:
    started = time.perf_counter()
    with pipeline_span(
        f"pipeline.convert.{conversion}",
        conversion=conversion,
        source_id=source_id,
        principal_id=principal.user_id if principal is not None else None,
    ) as span:
        try:
            yield span
        except PipelineError as exc:
            observe_conversion(conversion, exc.code)
            span.set_attribute("outcome", exc.code)
            logger.info(
                "conversion.rejected",
                extra={"conversion": conversion, "record_id": source_id, "reason": exc.reason},
            )
            raise
        span.set_attribute("outcome", "success")
        observe_conversion(conversion, "success", time.perf_counter() - started)


def authorize_conversion(
    principal: Principal,
    owner_user_id: int | None,
    assigned_to: int | None,
    domain: Domain,
) -> None:
    """Owner, assignee or superuser; and the role must be the domain operator, never a manager."""

    roles = classify(principal)
    if not (roles.is_superuser or is_owner_or_assignee(principal, owner_user_id, assigned_to)):
        raise Forbidden("only assigned sales or owner may convert")
    if roles.is_plain_manager(domain):
        raise Forbidden("manager may not convert")
    if not roles.is_operator(domain):
        raise Forbidden("role may not convert")


def parse_customer_id(raw: int | str | None) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError("customer id must be a positive integer")
    try:
        customer_id = int(str(raw).strip())
    except ValueError:
        raise ValidationError("customer id must be a positive integer") from None
    if customer_id <= 0:
        raise ValidationError("customer id must be a positive integer")
    return customer_id


@dataclass(slots=True)
class ConversionService:
    def convert_lead_to_opportunity(
        self,
        session: Session,
        principal: Principal | None,
        record_id: int,
    ) -> PipelineRecordRead:
        with _conversion_scope("lead_to_opportunity", record_id, principal):
            if principal is None:
                raise Unauthorized()
            record = self._load_record(session, record_id)
            if canonicalize_pipeline(record.status) != LeadStatus.QUALIFIED:
                raise InvalidTransition("only Qualified leads may convert to Opportunity")
            authorize_conversion(principal, record.owner_user_id, record.assigned_to, Domain.LEADS)

            before = snapshot(record)
            converted_at = utcnow()
            self._advance_record(
                session,
                record,
                status=OpportunityStatus.PROSPECTING.value,
                converted_at=converted_at,
            )
            write_user_log(
                session,
                principal,
                activity="lead.converted",
                entity_type="pipeline.record",
                entity_id=record.id,
                old_data={"status": before["status"]},
                new_data={"status": OpportunityStatus.PROSPECTING.value},
            )
            session.commit()
            session.refresh(record)

            events.publish(
                {
                    "event_type": "pipeline.lead.converted",
                    "record_id": record.id,
                    "actor_user_id": principal.user_id,
                }
            )
            logger.info("lead.converted", extra={"record_id": record.id, "principal_id": principal.user_id})
            return pipeline_service.to_record_read(record)

    def convert_opportunity_to_quotation(
        self,
        session: Session,
        principal: Principal | None,
        opportunity_id: int,
        customer_id: int | str | None = None,
    ) -> QuotationRead:
        with _conversion_scope("opportunity_to_quotation", opportunity_id, principal):
            if principal is None:
                raise Unauthorized()
            supplied_customer_id = parse_customer_id(customer_id)
            record = self._load_record(session, opportunity_id)
            if canonicalize_pipeline(record.status) != OpportunityStatus.PROSPECTING:
                raise InvalidTransition("only Prospecting may convert to SQ")
            authorize_conversion(principal, record.owner_user_id, record.assigned_to, Domain.OPPORTUNITIES)

            try:
                customer = self._resolve_customer(session, principal, record, supplied_customer_id)
                lines = price_product_interest(session, record.product_interest)
                total = estimate_total(lines)
                quotation_no = next_document_number(session, Quotation.quotation_no, "SQ", suffix="R0")

                before_status = record.status
                self._advance_record(
                    session,
                    record,
                    status=OpportunityStatus.SQ.value,
                    customer_id=customer.id,
                )

                quotation = Quotation(
                    quotation_no=quotation_no,
                    source_record_id=record.id,
                    customer_id=customer.id,
                    owner_user_id=record.owner_user_id,
                    assigned_to=record.assigned_to,
                    status=QuotationStatus.DRAFT.value,
                    subtotal=total,
                    total=total,
                    note=record.note,
                    created_by=principal.user_id,
                )
                for line_no, line in enumerate(lines, start=1):
                    quotation.lines.append(
                        QuotationLine(
                            line_no=line_no,
                            product_id=line.product_id,
                            product_name=line.product_name,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            line_total=line.line_total,
                        )
                    )
                session.add(quotation)
                session.flush()

                write_user_log(
                    session,
                    principal,
                    activity="opportunity.converted",
                    entity_type="pipeline.record",
                    entity_id=record.id,
                    old_data={"status": before_status},
                    new_data={"status": OpportunityStatus.SQ.value, "quotation_id": quotation.id},
                )
                write_user_log(
                    session,
                    principal,
                    activity="quotation.created",
                    entity_type="revenue.quotation",
                    entity_id=quotation.id,
                    new_data={"quotation_no": quotation.quotation_no, "total": str(total)},
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ConflictOnConvert() from None

            session.refresh(quotation)
            events.publish(
                {
                    "event_type": "pipeline.opportunity.converted",
                    "record_id": record.id,
                    "quotation_id": quotation.id,
                    "quotation_no": quotation.quotation_no,
                    "customer_id": customer.id,
                    "total": str(total),
                    "actor_user_id": principal.user_id,
                }
            )
            logger.info(
                "opportunity.converted",
                extra={"record_id": record.id, "quotation_id": quotation.id, "principal_id": principal.user_id},
            )
            return revenue_service.to_quotation_read(quotation)

    def convert_quotation_to_sales_order(
        self,
        session: Session,
        principal: Principal | None,
        quotation_id: int,
    ) -> SalesOrderRead:
        with _conversion_scope("quotation_to_sales_order", quotation_id, principal):
            if principal is None:
                raise Unauthorized()
            quotation = self._load_quotation(session, quotation_id)
            if canonicalize(quotation.status, StatusKind.QUOTATION) != QuotationStatus.APPROVED:
                raise InvalidTransition("only approved quotations may convert to a sales order")
            authorize_conversion(principal, quotation.owner_user_id, quotation.assigned_to, Domain.QUOTATIONS)

            try:
                sale_no = next_document_number(session, SalesOrder.sale_no, "SO")
                before_status = quotation.status
                result = session.execute(
                    update(Quotation)
                    .where(
                        Quotation.id == quotation.id,
                        Quotation.status == before_status,
                        Quotation.row_version == quotation.row_version,
                    )
                    .values(
                        status=QuotationStatus.CONVERTED.value,
                        row_version=Quotation.row_version + 1,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.rollback()
                    raise ConflictOnConvert()

                order = SalesOrder(
                    sale_no=sale_no,
                    quotation_id=quotation.id,
                    customer_id=quotation.customer_id,
                    owner_user_id=quotation.owner_user_id,
                    assigned_to=quotation.assigned_to,
                    status=SalesOrderStatus.DRAFT.value,
                    payment_status=PaymentStatus.UNPAID.value,
                    subtotal=quotation.subtotal,
                    discount=quotation.discount,
                    tax=quotation.tax,
                    total=quotation.total,
                    note=f"Converted from quotation {quotation.quotation_no}",
                    created_by=principal.user_id,
                )
                for line in quotation.lines:
                    order.lines.append(
                        SalesOrderLine(
                            line_no=line.line_no,
                            product_id=line.product_id,
                            product_name=line.product_name,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            line_total=line.line_total,
                        )
                    )
                session.add(order)
                session.flush()

                write_user_log(
                    session,
                    principal,
                    activity="quotation.converted",
                    entity_type="revenue.quotation",
                    entity_id=quotation.id,
                    old_data={"status": before_status},
                    new_data={"status": QuotationStatus.CONVERTED.value, "sales_order_id": order.id},
                )
                write_user_log(
                    session,
                    principal,
                    activity="sales_order.created",
                    entity_type="revenue.sales_order",
                    entity_id=order.id,
                    new_data={"sale_no": order.sale_no, "total": str(order.total)},
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ConflictOnConvert() from None

            session.refresh(order)
            events.publish(
                {
                    "event_type": "revenue.quotation.converted",
                    "quotation_id": quotation.id,
                    "sales_order_id": order.id,
                    "sale_no": order.sale_no,
                    "actor_user_id": principal.user_id,
                }
            )
            logger.info(
                "quotation.converted",
                extra={"quotation_id": quotation.id, "sales_order_id": order.id, "principal_id": principal.user_id},
            )
            return revenue_service.to_sales_order_read(order)

    @staticmethod
    def _load_record(session: Session, record_id: int) -> PipelineRecord:
        record = session.get(PipelineRecord, record_id, populate_existing=True, with_for_update=True)
        if record is None:
            raise NotFoundError("record not found")
        return record

    @staticmethod
    def _load_quotation(session: Session, quotation_id: int) -> Quotation:
        quotation = session.scalar(
            select(Quotation)
            .where(Quotation.id == quotation_id)
            .options(selectinload(Quotation.lines))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if quotation is None:
            raise NotFoundError("quotation not found")
        return quotation

    @staticmethod
    def _advance_record(session: Session, record: PipelineRecord, **values: Any) -> None:
        result = session.execute(
            update(PipelineRecord)
            .where(
                PipelineRecord.id == record.id,
                PipelineRecord.status == record.status,
                PipelineRecord.row_version == record.row_version,
            )
            .values(row_version=PipelineRecord.row_version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise ConflictOnConvert()

    @staticmethod
    def _resolve_customer(
        session: Session,
        principal: Principal,
        record: PipelineRecord,
        customer_id: int | None,
    ) -> Customer:
        if customer_id is not None:
            customer = session.get(Customer, customer_id)
            if customer is None:
                raise NotFoundError("customer not found")
            return customer

        name = record.customer_name or record.lead_name
        matches = [Customer.name == name]
        if record.email:
            matches.append(Customer.email == record.email)
        existing = session.scalar(select(Customer).where(or_(*matches)).order_by(Customer.id).limit(1))
        if existing is not None:
            return existing

        customer = Customer(
            name=name,
            email=record.email,
            phone=record.phone,
            type=record.type,
            company=record.company,
            address=record.location,
            note=f"Created from lead {record.reference_no}",
            created_by=principal.user_id,
        )
        session.add(customer)
        session.flush()
        return customer


conversion_service = ConversionService()
