from __future__ import annotations

import os
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from salesflow.business.catalog.models import CatalogProduct
from salesflow.core.auth import get_current_principal
from salesflow.core.config import get_settings
from salesflow.core.database import Base, get_db
from salesflow.main import app
from salesflow.otel import setup_inmemory_otel
from salesflow.pipeline.models import PipelineRecord
from salesflow.platform.security.context import Principal


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_principal() -> Principal:
        return Principal(user_id=7, role="sales")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = override_get_current_principal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed_opportunity(db: Session, status: str = "opp_prospecting") -> None:
    db.add(CatalogProduct(name="Widget A", sku="WA", price=Decimal("100.00")))
    db.add(
        PipelineRecord(
            reference_no="LE2615100001",
            owner_user_id=7,
            status=status,
            lead_name="OTel Customer",
            product_interest="Widget A",
        )
    )
    db.commit()


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.post("/leads", json={"lead_name": "OTel Lead"}, headers={"X-Correlation-Id": "otel-corr-1"})
    assert response.status_code == 201

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_conversion_span_carries_outcome_and_correlation(
    client: TestClient,
    db_session: Session,
    span_exporter: InMemorySpanExporter,
) -> None:
    _seed_opportunity(db_session)

    response = client.post("/opportunities/1/convert-sq", headers={"X-Correlation-Id": "otel-convert-1"})
    assert response.status_code == 201

    conversion_spans = [
        span
        for span in span_exporter.get_finished_spans()
        if span.name == "pipeline.convert.opportunity_to_quotation"
    ]
    assert conversion_spans
    assert any(
        span.attributes.get("source_id") == 1
        and span.attributes.get("principal_id") == 7
        and span.attributes.get("outcome") == "success"
        and span.attributes.get("correlation_id") == "otel-convert-1"
        for span in conversion_spans
    )


def test_rejected_conversion_span_records_error_code(
    client: TestClient,
    db_session: Session,
    span_exporter: InMemorySpanExporter,
) -> None:
    _seed_opportunity(db_session, status="opp_lost")

    response = client.post("/opportunities/1/convert-sq")
    assert response.status_code == 409

    conversion_spans = [
        span
        for span in span_exporter.get_finished_spans()
        if span.name == "pipeline.convert.opportunity_to_quotation"
    ]
    assert any(span.attributes.get("outcome") == "invalid_transition" for span in conversion_spans)
