"""Status registry for the sales pipeline.

Every stage value used anywhere in the service is one of the enums below.
Raw strings (stored data, request payloads) enter through :func:`canonicalize`,
which folds case, whitespace and the legacy vocabularies onto the canonical
members; nothing else compares raw status strings.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import StrEnum

from salesflow.platform.security.errors import UnknownStage


class LeadStatus(StrEnum):
    NEW = "lead_new"
    CONTACTED = "lead_contacted"
    QUALIFIED = "lead_qualified"
    UNQUALIFIED = "lead_unqualified"
    CONVERTED = "lead_converted"


class OpportunityStatus(StrEnum):
    PROSPECTING = "opp_prospecting"
    SQ = "opp_sq"
    LOST = "opp_lost"
    CONVERTED = "converted"


class QuotationStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "sq_submitted"
    APPROVED = "sq_approved"
    REJECTED = "sq_rejected"
    CONVERTED = "converted"


class SalesOrderStatus(StrEnum):
    DRAFT = "draft"
    OPEN = "open"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PAID = "paid"


class Phase(StrEnum):
    LEAD = "lead"
    OPPORTUNITY = "opportunity"
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"


class StatusKind(StrEnum):
    """Which stored vocabulary a raw value comes from.

    ``draft`` and ``converted`` exist in several vocabularies, so the caller
    names the column it is reading.
    """

    PIPELINE = "pipeline"
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    PAYMENT = "payment"


PipelineStage = LeadStatus | OpportunityStatus
Stage = LeadStatus | OpportunityStatus | QuotationStatus | SalesOrderStatus | PaymentStatus


def _table(canonical: list[StrEnum], synonyms: dict[str, StrEnum]) -> dict[str, StrEnum]:
    table: dict[str, StrEnum] = {member.value: member for member in canonical}
    table.update(synonyms)
    return table


_SYNONYMS: dict[StatusKind, dict[str, StrEnum]] = {
    StatusKind.PIPELINE: _table(
        [*LeadStatus, *OpportunityStatus],
        {
            "new": LeadStatus.NEW,
            "new_lead": LeadStatus.NEW,
            "contacted": LeadStatus.CONTACTED,
            "working": LeadStatus.CONTACTED,
            "interested": LeadStatus.CONTACTED,
            "lead_interested": LeadStatus.CONTACTED,
            "qualified": LeadStatus.QUALIFIED,
            "leadqualified": LeadStatus.QUALIFIED,
            "unqualified": LeadStatus.UNQUALIFIED,
            "disqualified": LeadStatus.UNQUALIFIED,
            "prospecting": OpportunityStatus.PROSPECTING,
            "opportunityqualified": OpportunityStatus.PROSPECTING,
            "opportunity_qualified": OpportunityStatus.PROSPECTING,
            "opp_qualified": OpportunityStatus.PROSPECTING,
            "sq": OpportunityStatus.SQ,
            "quotation_created": OpportunityStatus.SQ,
            "lost": OpportunityStatus.LOST,
            "closed_lost": OpportunityStatus.LOST,
        },
    ),
    StatusKind.QUOTATION: _table(
        list(QuotationStatus),
        {
            "sq_draft": QuotationStatus.DRAFT,
            "revised": QuotationStatus.DRAFT,
            "sq_revised": QuotationStatus.DRAFT,
            "submitted": QuotationStatus.SUBMITTED,
            "pending_approval": QuotationStatus.SUBMITTED,
            "review": QuotationStatus.SUBMITTED,
            "sq_review": QuotationStatus.SUBMITTED,
            "waiting_approval": QuotationStatus.SUBMITTED,
            "sq_waiting_approval": QuotationStatus.SUBMITTED,
            "approved": QuotationStatus.APPROVED,
            "sent": QuotationStatus.APPROVED,
            "sq_sent": QuotationStatus.APPROVED,
            "win": QuotationStatus.APPROVED,
            "won": QuotationStatus.APPROVED,
            "sq_win": QuotationStatus.APPROVED,
            "rejected": QuotationStatus.REJECTED,
            "lost": QuotationStatus.REJECTED,
            "sq_lost": QuotationStatus.REJECTED,
            "cancelled": QuotationStatus.REJECTED,
            "canceled": QuotationStatus.REJECTED,
            "sq_cancelled": QuotationStatus.REJECTED,
            "sq_converted": QuotationStatus.CONVERTED,
        },
    ),
    StatusKind.SALES_ORDER: _table(
        list(SalesOrderStatus),
        {
            "so_draft": SalesOrderStatus.DRAFT,
            "confirmed": SalesOrderStatus.OPEN,
            "so_confirmed": SalesOrderStatus.OPEN,
            "in_progress": SalesOrderStatus.PROCESSING,
            "so_in_progress": SalesOrderStatus.PROCESSING,
            "ready_to_ship": SalesOrderStatus.PROCESSING,
            "so_ready_to_ship": SalesOrderStatus.PROCESSING,
            "partially_shipped": SalesOrderStatus.PROCESSING,
            "so_partially_shipped": SalesOrderStatus.PROCESSING,
            "shipped": SalesOrderStatus.PROCESSING,
            "so_shipped": SalesOrderStatus.PROCESSING,
            "delivered": SalesOrderStatus.COMPLETED,
            "so_delivered": SalesOrderStatus.COMPLETED,
            "closed": SalesOrderStatus.COMPLETED,
            "so_closed": SalesOrderStatus.COMPLETED,
            "canceled": SalesOrderStatus.CANCELLED,
            "so_cancelled": SalesOrderStatus.CANCELLED,
        },
    ),
    StatusKind.PAYMENT: _table(
        list(PaymentStatus),
        {
            "pay_unpaid": PaymentStatus.UNPAID,
            "partial": PaymentStatus.UNPAID,
            "pay_partial": PaymentStatus.UNPAID,
            "overdue": PaymentStatus.UNPAID,
            "pay_overdue": PaymentStatus.UNPAID,
            "refunded": PaymentStatus.UNPAID,
            "pay_refunded": PaymentStatus.UNPAID,
            "pay_paid": PaymentStatus.PAID,
        },
    ),
}

_SEPARATORS_RE = re.compile(r"[\s\-]+")


def _normalize(raw: str) -> str:
    return _SEPARATORS_RE.sub("_", raw.strip().lower())


def canonicalize(raw: object, kind: StatusKind = StatusKind.PIPELINE) -> Stage:
    """Resolve a raw stage value to its canonical member, or raise :class:`UnknownStage`."""

    if not isinstance(raw, str) or not raw.strip():
        raise UnknownStage(raw)
    stage = _SYNONYMS[kind].get(_normalize(str(raw)))
    if stage is None:
        raise UnknownStage(raw)
    return stage  # type: ignore[return-value]


def stored_values_for(stages: Iterable[Stage], kind: StatusKind = StatusKind.PIPELINE) -> list[str]:
    """Normalized stored spellings that canonicalize to one of ``stages``.

    Used to filter rows in SQL, where the column still holds whatever value
    was written, legacy synonyms included.
    """

    wanted = {member.value for member in stages}
    return sorted(key for key, member in _SYNONYMS[kind].items() if member.value in wanted)


def canonicalize_pipeline(raw: object) -> PipelineStage:
    return canonicalize(raw, StatusKind.PIPELINE)  # type: ignore[return-value]


def prefix_of(stage: Stage | str) -> Phase:
    if not isinstance(stage, (LeadStatus, OpportunityStatus, QuotationStatus, SalesOrderStatus, PaymentStatus)):
        stage = canonicalize(stage)
    if isinstance(stage, LeadStatus):
        return Phase.LEAD
    if isinstance(stage, OpportunityStatus):
        return Phase.OPPORTUNITY
    if isinstance(stage, QuotationStatus):
        return Phase.QUOTATION
    return Phase.SALES_ORDER


# Moves a user may request by editing the status field. Conversion-only
# moves (qualified lead to Prospecting, Prospecting to SQ) are never listed.
PIPELINE_TRANSITIONS: dict[PipelineStage, set[PipelineStage]] = {
    LeadStatus.NEW: {LeadStatus.CONTACTED, LeadStatus.UNQUALIFIED},
    LeadStatus.CONTACTED: {LeadStatus.QUALIFIED, LeadStatus.UNQUALIFIED},
    LeadStatus.QUALIFIED: {LeadStatus.UNQUALIFIED},
    LeadStatus.UNQUALIFIED: set(),
    LeadStatus.CONVERTED: {OpportunityStatus.PROSPECTING},
    OpportunityStatus.PROSPECTING: {OpportunityStatus.LOST},
    OpportunityStatus.LOST: {OpportunityStatus.PROSPECTING},
    OpportunityStatus.SQ: set(),
    OpportunityStatus.CONVERTED: set(),
}

QUOTATION_TRANSITIONS: dict[QuotationStatus, set[QuotationStatus]] = {
    QuotationStatus.DRAFT: {QuotationStatus.SUBMITTED},
    QuotationStatus.SUBMITTED: {QuotationStatus.APPROVED, QuotationStatus.REJECTED},
    QuotationStatus.REJECTED: {QuotationStatus.DRAFT},
    QuotationStatus.APPROVED: set(),
    QuotationStatus.CONVERTED: set(),
}

SALES_ORDER_TRANSITIONS: dict[SalesOrderStatus, set[SalesOrderStatus]] = {
    SalesOrderStatus.DRAFT: {SalesOrderStatus.OPEN, SalesOrderStatus.CANCELLED},
    SalesOrderStatus.OPEN: {SalesOrderStatus.PROCESSING, SalesOrderStatus.CANCELLED},
    SalesOrderStatus.PROCESSING: {SalesOrderStatus.COMPLETED, SalesOrderStatus.CANCELLED},
    SalesOrderStatus.COMPLETED: set(),
    SalesOrderStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.UNPAID: {PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
}

_TRANSITIONS: dict[type, dict] = {
    LeadStatus: PIPELINE_TRANSITIONS,
    OpportunityStatus: PIPELINE_TRANSITIONS,
    QuotationStatus: QUOTATION_TRANSITIONS,
    SalesOrderStatus: SALES_ORDER_TRANSITIONS,
    PaymentStatus: PAYMENT_TRANSITIONS,
}


def is_valid_transition(current: Stage, target: Stage) -> bool:
    table = _TRANSITIONS.get(type(current))
    if table is None or table is not _TRANSITIONS.get(type(target)):
        return False
    return target in table.get(current, set())


_DISPLAY_PREFIXES = ("lead_", "opp_", "sq_", "so_", "pay_")


def format_status_display(stage: Stage | str | None) -> str:
    if not stage:
        return "Open"
    value = str(stage)
    for prefix in _DISPLAY_PREFIXES:
        if value.startswith(prefix):
            value = value[len(prefix):]
            break
    return " ".join(word.capitalize() for word in value.split("_"))


_KIND_MEMBERS: dict[StatusKind, list[StrEnum]] = {
    StatusKind.PIPELINE: [*LeadStatus, *OpportunityStatus],
    StatusKind.QUOTATION: list(QuotationStatus),
    StatusKind.SALES_ORDER: list(SalesOrderStatus),
    StatusKind.PAYMENT: list(PaymentStatus),
}


def status_options(kind: StatusKind) -> list[dict[str, str]]:
    return [{"value": member.value, "label": format_status_display(member.value)} for member in _KIND_MEMBERS[kind]]
