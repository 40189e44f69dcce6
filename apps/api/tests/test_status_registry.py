from __future__ import annotations

import pytest

from salesflow.pipeline.statuses import (
    PIPELINE_TRANSITIONS,
    LeadStatus,
    OpportunityStatus,
    PaymentStatus,
    Phase,
    QuotationStatus,
    SalesOrderStatus,
    StatusKind,
    canonicalize,
    canonicalize_pipeline,
    format_status_display,
    is_valid_transition,
    prefix_of,
    status_options,
    stored_values_for,
)
from salesflow.platform.security.errors import UnknownStage


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("lead_new", LeadStatus.NEW),
        ("New", LeadStatus.NEW),
        ("  CONTACTED ", LeadStatus.CONTACTED),
        ("Interested", LeadStatus.CONTACTED),
        ("Qualified", LeadStatus.QUALIFIED),
        ("Prospecting", OpportunityStatus.PROSPECTING),
        ("OpportunityQualified", OpportunityStatus.PROSPECTING),
        ("opp_qualified", OpportunityStatus.PROSPECTING),
        ("Quotation Created", OpportunityStatus.SQ),
        ("opp-lost", OpportunityStatus.LOST),
        ("converted", OpportunityStatus.CONVERTED),
    ],
)
def test_canonicalize_pipeline_vocabulary(raw: str, expected: object) -> None:
    assert canonicalize(raw) == expected


@pytest.mark.parametrize(
    ("raw", "kind", "expected"),
    [
        ("draft", StatusKind.QUOTATION, QuotationStatus.DRAFT),
        ("sq_sent", StatusKind.QUOTATION, QuotationStatus.APPROVED),
        ("Win", StatusKind.QUOTATION, QuotationStatus.APPROVED),
        ("sq_review", StatusKind.QUOTATION, QuotationStatus.SUBMITTED),
        ("sq_waiting_approval", StatusKind.QUOTATION, QuotationStatus.SUBMITTED),
        ("sq_cancelled", StatusKind.QUOTATION, QuotationStatus.REJECTED),
        ("converted", StatusKind.QUOTATION, QuotationStatus.CONVERTED),
        ("draft", StatusKind.SALES_ORDER, SalesOrderStatus.DRAFT),
        ("so_in_progress", StatusKind.SALES_ORDER, SalesOrderStatus.PROCESSING),
        ("Canceled", StatusKind.SALES_ORDER, SalesOrderStatus.CANCELLED),
        ("pay_partial", StatusKind.PAYMENT, PaymentStatus.UNPAID),
        ("PAID", StatusKind.PAYMENT, PaymentStatus.PAID),
    ],
)
def test_canonicalize_selects_vocabulary_by_kind(raw: str, kind: StatusKind, expected: object) -> None:
    assert canonicalize(raw, kind) == expected


@pytest.mark.parametrize("raw", ["", "   ", "bogus", "sq_submitted", None, 7])
def test_canonicalize_rejects_unknown_values(raw: object) -> None:
    with pytest.raises(UnknownStage):
        canonicalize(raw)


def test_canonicalize_is_a_fixed_point() -> None:
    for raw in ["new", "Interested", "Prospecting", "quotation_created", "closed_lost", "lead_converted"]:
        stage = canonicalize_pipeline(raw)
        assert canonicalize_pipeline(stage) == stage
        assert canonicalize_pipeline(stage.value) == stage


def test_prefix_of_maps_stage_to_phase() -> None:
    assert prefix_of(LeadStatus.CONTACTED) == Phase.LEAD
    assert prefix_of("opp_sq") == Phase.OPPORTUNITY
    assert prefix_of(QuotationStatus.SUBMITTED) == Phase.QUOTATION
    assert prefix_of(SalesOrderStatus.OPEN) == Phase.SALES_ORDER


def test_conversion_only_targets_are_not_manual_transitions() -> None:
    assert not is_valid_transition(LeadStatus.QUALIFIED, OpportunityStatus.PROSPECTING)
    assert not is_valid_transition(OpportunityStatus.PROSPECTING, OpportunityStatus.SQ)
    assert not is_valid_transition(QuotationStatus.APPROVED, QuotationStatus.CONVERTED)
    for targets in PIPELINE_TRANSITIONS.values():
        assert OpportunityStatus.SQ not in targets


def test_manual_transitions() -> None:
    assert is_valid_transition(LeadStatus.NEW, LeadStatus.CONTACTED)
    assert is_valid_transition(LeadStatus.CONTACTED, LeadStatus.QUALIFIED)
    assert not is_valid_transition(LeadStatus.NEW, LeadStatus.QUALIFIED)
    assert is_valid_transition(OpportunityStatus.PROSPECTING, OpportunityStatus.LOST)
    assert is_valid_transition(OpportunityStatus.LOST, OpportunityStatus.PROSPECTING)
    assert not is_valid_transition(OpportunityStatus.SQ, OpportunityStatus.LOST)
    assert is_valid_transition(SalesOrderStatus.PROCESSING, SalesOrderStatus.COMPLETED)
    assert not is_valid_transition(SalesOrderStatus.COMPLETED, SalesOrderStatus.CANCELLED)
    assert is_valid_transition(PaymentStatus.UNPAID, PaymentStatus.PAID)


def test_transitions_never_cross_vocabularies() -> None:
    assert not is_valid_transition(QuotationStatus.DRAFT, SalesOrderStatus.OPEN)
    assert not is_valid_transition(LeadStatus.NEW, QuotationStatus.SUBMITTED)


def test_format_status_display() -> None:
    assert format_status_display("opp_prospecting") == "Prospecting"
    assert format_status_display(LeadStatus.UNQUALIFIED) == "Unqualified"
    assert format_status_display("sq_approved") == "Approved"
    assert format_status_display(None) == "Open"


def test_status_options_cover_every_member() -> None:
    options = status_options(StatusKind.SALES_ORDER)
    assert [option["value"] for option in options] == [member.value for member in SalesOrderStatus]
    assert options[0] == {"value": "draft", "label": "Draft"}


def test_stored_values_for_lists_every_spelling() -> None:
    values = stored_values_for([OpportunityStatus.PROSPECTING])
    assert {"opp_prospecting", "prospecting", "opportunityqualified", "opp_qualified"} <= set(values)
    assert "lead_qualified" not in values

    assert stored_values_for([QuotationStatus.SUBMITTED], StatusKind.QUOTATION) == [
        "pending_approval",
        "review",
        "sq_review",
        "sq_submitted",
        "sq_waiting_approval",
        "submitted",
        "waiting_approval",
    ]
    assert stored_values_for([QuotationStatus.CONVERTED], StatusKind.QUOTATION) == ["converted", "sq_converted"]
