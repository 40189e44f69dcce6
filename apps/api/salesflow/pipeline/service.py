from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salesflow.core import events
from salesflow.business.revenue.models import Quotation
from salesflow.metrics import observe_transition
from salesflow.pipeline.models import PipelineRecord
from salesflow.pipeline.pricing import potential_values
from salesflow.pipeline.repository import PipelineRecordRepository
from salesflow.pipeline.schemas import LeadCreate, PipelineRecordRead
from salesflow.pipeline.statuses import (
    LeadStatus,
    OpportunityStatus,
    Phase,
    PipelineStage,
    canonicalize_pipeline,
    format_status_display,
    is_valid_transition,
    prefix_of,
)
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFoundError,
    Unauthorized,
    UnknownStage,
    ValidationError,
)
from salesflow.platform.security.fls import CUSTOMER_INFO_FIELDS, SYSTEM_FIELDS, domain_for_stage
from salesflow.platform.security.roles import Domain, classify
from salesflow.services.audit import write_user_log
from salesflow.services.numbering import next_document_number
from salesflow.services.pagination import clamp_limit


logger = logging.getLogger("salesflow.pipeline")

EDITABLE_FIELDS = frozenset({"status", "assigned_to", "product_interest", "note"})
RECORD_FIELDS = SYSTEM_FIELDS | CUSTOMER_INFO_FIELDS | EDITABLE_FIELDS
DOMAIN_STAGES: dict[Domain, tuple[PipelineStage, ...]] = {
    Domain.LEADS: tuple(LeadStatus),
    Domain.OPPORTUNITIES: tuple(OpportunityStatus),
}
SEARCH_COLUMNS = ("reference_no", "lead_name", "customer_name", "company", "email")


def snapshot(record: PipelineRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "reference_no": record.reference_no,
        "status": record.status,
        "owner_user_id": record.owner_user_id,
        "assigned_to": record.assigned_to,
        "lead_name": record.lead_name,
        "customer_name": record.customer_name,
        "email": record.email,
        "product_interest": record.product_interest,
        "note": record.note,
        "customer_id": record.customer_id,
        "row_version": record.row_version,
    }


def parse_user_id(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a positive integer")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field_name} must be a positive integer") from None
    if parsed <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return parsed


@dataclass(slots=True)
class PipelineService:
    record_repository: PipelineRecordRepository = PipelineRecordRepository()

    def create_lead(self, session: Session, principal: Principal | None, payload: LeadCreate) -> PipelineRecordRead:
        if principal is None:
            raise Unauthorized()
        roles = classify(principal)
        if not (roles.is_operator(Domain.LEADS) or roles.is_manager(Domain.LEADS)):
            raise Forbidden("role may not create leads")

        data = payload.model_dump(mode="python")
        data["status"] = LeadStatus.NEW.value
        data["owner_user_id"] = principal.user_id
        data["reference_no"] = next_document_number(session, PipelineRecord.reference_no, "LE")

        record = PipelineRecord(**data)
        session.add(record)
        try:
            session.flush()
            write_user_log(
                session,
                principal,
                activity="lead.created",
                entity_type="pipeline.record",
                entity_id=record.id,
                new_data=snapshot(record),
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            raise Conflict("lead reference number already exists")
        session.refresh(record)

        events.publish(
            {
                "event_type": "pipeline.lead.created",
                "record_id": record.id,
                "reference_no": record.reference_no,
                "owner_user_id": record.owner_user_id,
            }
        )
        logger.info("lead.created", extra={"record_id": record.id, "principal_id": principal.user_id})
        return self.to_record_read(record)

    def list_records(
        self,
        session: Session,
        principal: Principal | None,
        domain: Domain,
        *,
        status: str | None = None,
        source: str | None = None,
        owner_user_id: int | None = None,
        q: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[PipelineRecordRead]:
        stages = DOMAIN_STAGES.get(domain)
        if stages is None:
            raise ValidationError(f"records cannot be listed for domain '{domain.value}'")
        scope = self.record_repository.scope_for(principal, domain)

        stmt: Select[tuple[PipelineRecord]] = select(PipelineRecord)
        if status is not None:
            stage = self._parse_status(status)
            if stage not in stages:
                raise ValidationError(f"status {format_status_display(stage)} does not belong to {domain.value}")
            stmt = stmt.where(self.record_repository.status_clause(PipelineRecord.status, [stage]))
        else:
            stmt = stmt.where(self.record_repository.status_clause(PipelineRecord.status, stages))
        if source is not None:
            stmt = stmt.where(PipelineRecord.source == source)
        if owner_user_id is not None:
            stmt = stmt.where(PipelineRecord.owner_user_id == owner_user_id)
        if q:
            pattern = f"%{q.strip()}%"
            stmt = stmt.where(or_(*(getattr(PipelineRecord, column).ilike(pattern) for column in SEARCH_COLUMNS)))

        stmt = self.record_repository.apply_scope_query(stmt, scope)
        stmt = stmt.order_by(PipelineRecord.created_at.desc(), PipelineRecord.id.desc())
        rows = session.scalars(stmt.offset(max(offset, 0)).limit(clamp_limit(limit))).all()

        values: dict[int, Decimal] = {}
        if domain == Domain.OPPORTUNITIES:
            values = potential_values(session, {row.id: row.product_interest for row in rows})
        return [self.to_record_read(row, potential_value=values.get(row.id)) for row in rows]

    def get_record(self, session: Session, principal: Principal | None, record_id: int) -> PipelineRecordRead:
        if principal is None:
            raise Unauthorized()
        record = self._get_record(session, record_id)
        stage = canonicalize_pipeline(record.status)
        scope = self.record_repository.scope_for(principal, domain_for_stage(stage))
        if not scope.allows(record.owner_user_id, record.assigned_to):
            raise NotFoundError("record not found")

        return self._read_with_value(session, record)

    def update_field(
        self,
        session: Session,
        principal: Principal | None,
        record_id: int,
        field_name: str,
        value: Any,
    ) -> PipelineRecordRead:
        """Set one field on a record.

        Checks run in a fixed order: authentication, field name, record
        lookup, value format, field permission policy and finally the status
        transition table. A failure leaves the record untouched.
        """

        if principal is None:
            raise Unauthorized()
        if field_name not in RECORD_FIELDS:
            raise ValidationError(f"unknown field '{field_name}'")

        record = self._get_record(session, record_id, for_update=True)
        proposed = self._coerce_value(field_name, value)
        self.record_repository.validate_field_update(principal, record, field_name, proposed)

        if field_name == "status":
            current = canonicalize_pipeline(record.status)
            if proposed == current:
                return self.to_record_read(record)
            if not is_valid_transition(current, proposed):
                raise InvalidTransition(
                    f"cannot move from {format_status_display(current)} to {format_status_display(proposed)}"
                )
            stored_value: Any = proposed.value
        else:
            stored_value = proposed

        old_value = getattr(record, field_name)
        setattr(record, field_name, stored_value)
        record.row_version += 1
        write_user_log(
            session,
            principal,
            activity=f"record.{field_name}.updated",
            method="PATCH",
            entity_type="pipeline.record",
            entity_id=record.id,
            old_data={field_name: old_value},
            new_data={field_name: stored_value},
        )
        session.commit()
        session.refresh(record)

        if field_name == "status":
            observe_transition(phase=prefix_of(proposed).value, target=stored_value)
        events.publish(
            {
                "event_type": "pipeline.record.updated",
                "record_id": record.id,
                "field": field_name,
                "old_value": old_value,
                "new_value": stored_value,
                "actor_user_id": principal.user_id,
            }
        )
        logger.info(
            "record.updated",
            extra={"record_id": record.id, "field": field_name, "principal_id": principal.user_id},
        )
        return self._read_with_value(session, record)

    def correct_customer_info(
        self,
        session: Session,
        principal: Principal | None,
        record_id: int,
        field_name: str,
        value: str | None,
    ) -> PipelineRecordRead:
        """Superuser-only rewrite of a customer-information field."""

        if principal is None:
            raise Unauthorized()
        if field_name not in RECORD_FIELDS:
            raise ValidationError(f"unknown field '{field_name}'")

        record = self._get_record(session, record_id, for_update=True)
        self.record_repository.validate_admin_correction(principal, record, field_name)
        if field_name == "lead_name" and not (value or "").strip():
            raise ValidationError("lead_name cannot be empty")

        old_value = getattr(record, field_name)
        setattr(record, field_name, value)
        record.row_version += 1
        write_user_log(
            session,
            principal,
            activity="record.admin_corrected",
            method="POST",
            entity_type="pipeline.record",
            entity_id=record.id,
            old_data={field_name: old_value},
            new_data={field_name: value},
        )
        session.commit()
        session.refresh(record)

        events.publish(
            {
                "event_type": "pipeline.record.corrected",
                "record_id": record.id,
                "field": field_name,
                "actor_user_id": principal.user_id,
            }
        )
        logger.warning(
            "record.admin_corrected",
            extra={"record_id": record.id, "field": field_name, "principal_id": principal.user_id},
        )
        return self.to_record_read(record)

    def delete_record(self, session: Session, principal: Principal | None, record_id: int) -> None:
        if principal is None:
            raise Unauthorized()
        if not classify(principal).is_superuser:
            raise Forbidden("only superuser may delete records")

        record = self._get_record(session, record_id, for_update=True)
        stage = canonicalize_pipeline(record.status)
        has_quotation = session.scalar(select(Quotation.id).where(Quotation.source_record_id == record.id)) is not None
        if stage in {OpportunityStatus.SQ, OpportunityStatus.CONVERTED} or has_quotation:
            raise InvalidTransition("converted records cannot be deleted")

        before = snapshot(record)
        write_user_log(
            session,
            principal,
            activity="record.deleted",
            method="DELETE",
            entity_type="pipeline.record",
            entity_id=record.id,
            old_data=before,
        )
        session.delete(record)
        session.commit()

        events.publish(
            {
                "event_type": "pipeline.record.deleted",
                "record_id": before["id"],
                "actor_user_id": principal.user_id,
            }
        )
        logger.warning("record.deleted", extra={"record_id": before["id"], "principal_id": principal.user_id})

    def _read_with_value(self, session: Session, record: PipelineRecord) -> PipelineRecordRead:
        value = None
        if prefix_of(canonicalize_pipeline(record.status)) == Phase.OPPORTUNITY:
            value = potential_values(session, {record.id: record.product_interest})[record.id]
        return self.to_record_read(record, potential_value=value)

    @staticmethod
    def _parse_status(raw: Any) -> PipelineStage:
        try:
            return canonicalize_pipeline(raw)
        except UnknownStage:
            raise ValidationError(f"unknown status value {raw!r}") from None

    def _coerce_value(self, field_name: str, value: Any) -> Any:
        if field_name == "status":
            return self._parse_status(value)
        if field_name == "assigned_to":
            return parse_user_id(value, "assigned_to")
        if value is None:
            return None
        return str(value)

    @staticmethod
    def _get_record(session: Session, record_id: int, *, for_update: bool = False) -> PipelineRecord:
        stmt = select(PipelineRecord).where(PipelineRecord.id == record_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        record = session.scalar(stmt)
        if record is None:
            raise NotFoundError("record not found")
        return record

    @staticmethod
    def to_record_read(record: PipelineRecord, *, potential_value: Decimal | None = None) -> PipelineRecordRead:
        try:
            stage = canonicalize_pipeline(record.status)
        except UnknownStage:
            logger.error("record.unknown_stage", extra={"record_id": record.id, "stage": record.status})
            raise
        payload = {
            "id": record.id,
            "reference_no": record.reference_no,
            "owner_user_id": record.owner_user_id,
            "assigned_to": record.assigned_to,
            "status": stage.value,
            "status_label": format_status_display(stage),
            "phase": prefix_of(stage).value,
            "lead_name": record.lead_name,
            "customer_name": record.customer_name,
            "contact": record.contact,
            "email": record.email,
            "phone": record.phone,
            "type": record.type,
            "company": record.company,
            "location": record.location,
            "source": record.source,
            "product_interest": record.product_interest,
            "note": record.note,
            "customer_id": record.customer_id,
            "converted_at": record.converted_at,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "row_version": record.row_version,
            "potential_value": potential_value,
        }
        return PipelineRecordRead.model_validate(payload)


pipeline_service = PipelineService()
