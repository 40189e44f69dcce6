from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from salesflow.services import audit
from salesflow.metrics import observe_field_denied
from salesflow.pipeline.statuses import (
    LeadStatus,
    OpportunityStatus,
    Phase,
    PipelineStage,
    canonicalize_pipeline,
    prefix_of,
)
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import Forbidden, Unauthorized, UnknownStage
from salesflow.platform.security.rls import is_owner_or_assignee
from salesflow.platform.security.roles import Domain, classify


CUSTOMER_INFO_FIELDS = frozenset(
    {"customer_name", "lead_name", "contact", "email", "phone", "type", "company", "location", "source"}
)
SYSTEM_FIELDS = frozenset(
    {
        "id",
        "id_user",
        "owner_user_id",
        "reference_no",
        "customer_id",
        "converted_at",
        "created_at",
        "updated_at",
        "row_version",
    }
)
MANAGER_FIELDS = frozenset({"status", "assigned_to"})
MANAGER_STATUS_TARGETS = frozenset({OpportunityStatus.PROSPECTING, OpportunityStatus.LOST})
CONVERT_ONLY_TARGETS = frozenset({OpportunityStatus.SQ, OpportunityStatus.CONVERTED})
EDITABLE_STAGES = frozenset(
    {LeadStatus.NEW, LeadStatus.CONTACTED, LeadStatus.QUALIFIED, OpportunityStatus.PROSPECTING}
)


class OwnedRecord(Protocol):
    id: int
    owner_user_id: int
    assigned_to: int | None
    status: str


@dataclass(frozen=True, slots=True)
class FieldDecision:
    allowed: bool
    reason: str | None = None


ALLOW = FieldDecision(allowed=True)


def _deny(reason: str) -> FieldDecision:
    return FieldDecision(allowed=False, reason=reason)


def domain_for_stage(stage: PipelineStage) -> Domain:
    return Domain.LEADS if prefix_of(stage) == Phase.LEAD else Domain.OPPORTUNITIES


def _proposed_stage(value: Any) -> PipelineStage | None:
    if value is None:
        return None
    try:
        return canonicalize_pipeline(value)
    except UnknownStage:
        return None


def check_field_update(
    principal: Principal,
    record: OwnedRecord,
    field_name: str,
    proposed: Any = None,
) -> FieldDecision:
    """Decide whether ``principal`` may set ``field_name`` on ``record``.

    Rules are evaluated in order and the first match wins:

    1. system-managed fields and customer information are never editable here
    2. a domain manager (not superuser) may only change ``status`` to
       Prospecting or Lost, or reassign the record
    3. superuser may change anything else
    4. other principals must be the domain operator and the record owner or
       assignee
    5. ``status`` may be set to anything but the conversion-only stages; the
       transition table decides whether the move itself is legal
    6. every other field is editable only while the record is in an open
       lead stage or Prospecting
    """

    if field_name in SYSTEM_FIELDS:
        return _deny("field is managed by the system")
    if field_name in CUSTOMER_INFO_FIELDS:
        return _deny("customer information is read-only")

    roles = classify(principal)
    if roles.is_empty:
        return _deny("role may not modify records in this domain")

    current = canonicalize_pipeline(record.status)
    domain = domain_for_stage(current)

    if roles.is_plain_manager(domain):
        if field_name not in MANAGER_FIELDS:
            return _deny("manager may only change Status and Assignment")
        if field_name == "status" and proposed is not None and _proposed_stage(proposed) not in MANAGER_STATUS_TARGETS:
            return _deny("manager may only set Prospecting or Lost")
        return ALLOW

    if roles.is_superuser:
        return ALLOW

    if not roles.is_operator(domain):
        return _deny("role may not modify records in this domain")
    if not is_owner_or_assignee(principal, record.owner_user_id, record.assigned_to):
        return _deny("only the owner or assigned sales may modify this record")

    if field_name == "status":
        if _proposed_stage(proposed) in CONVERT_ONLY_TARGETS:
            return _deny("SQ status is only reachable via Convert")
        return ALLOW

    if current not in EDITABLE_STAGES:
        return _deny("current stage does not permit field edits")
    return ALLOW


def validate_field_update(
    principal: Principal | None,
    record: OwnedRecord,
    field_name: str,
    proposed: Any = None,
) -> None:
    """Raise :class:`Forbidden` with the policy reason when the update is denied."""

    if principal is None:
        raise Unauthorized()

    decision = check_field_update(principal, record, field_name, proposed)
    if decision.allowed:
        return

    reason = decision.reason or "field update denied"
    _emit_field_denied(principal=principal, record=record, field_name=field_name, reason=reason)
    raise Forbidden(reason)


def check_admin_correction(principal: Principal, field_name: str) -> FieldDecision:
    """Administrative override for customer information; superuser only."""

    if field_name not in CUSTOMER_INFO_FIELDS:
        return _deny("only customer information can be corrected administratively")
    if not classify(principal).is_superuser:
        return _deny("only superuser may correct customer information")
    return ALLOW


def validate_admin_correction(principal: Principal | None, record: OwnedRecord, field_name: str) -> None:
    if principal is None:
        raise Unauthorized()

    decision = check_admin_correction(principal, field_name)
    if decision.allowed:
        return

    reason = decision.reason or "correction denied"
    _emit_field_denied(principal=principal, record=record, field_name=field_name, reason=reason)
    raise Forbidden(reason)


def _emit_field_denied(*, principal: Principal, record: OwnedRecord, field_name: str, reason: str) -> None:
    try:
        domain = domain_for_stage(canonicalize_pipeline(record.status)).value
    except UnknownStage:
        domain = "unknown"

    observe_field_denied(domain=domain, field=field_name)
    audit.record(
        actor_user_id=principal.user_id,
        entity_type="security.field_policy",
        entity_id=str(record.id),
        action="field.denied",
        before=None,
        after={
            "domain": domain,
            "field": field_name,
            "reason": reason,
            "role": principal.role,
        },
        correlation_id=principal.correlation_id,
    )
