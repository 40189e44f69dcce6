from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesflow.business.catalog.models import CatalogProduct
from salesflow.core import events
from salesflow.core.auth import get_current_principal
from salesflow.core.config import get_settings
from salesflow.core.database import Base, get_db
from salesflow.main import app
from salesflow.models.audit import UserLog
from salesflow.pipeline.models import PipelineRecord
from salesflow.platform.security.context import Principal
from salesflow.services import audit


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
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()


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


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get("/records/999")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get("/records/999", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_user_log_and_denial_audit_use_request_correlation_id(client: TestClient, db_session: Session) -> None:
    response = client.post("/leads", json={"lead_name": "Corr Lead"}, headers={"X-Correlation-Id": "corr-log-1"})
    assert response.status_code == 201

    log = db_session.scalars(select(UserLog).where(UserLog.activity == "lead.created")).one()
    assert log.correlation_id == "corr-log-1"

    assert not [entry for entry in audit.audit_entries if entry["action"] == "lead.created"]

    denied = client.patch(
        f"/records/{response.json()['id']}/fields/lead_name",
        json={"value": "Renamed"},
        headers={"X-Correlation-Id": "corr-log-2"},
    )
    assert denied.status_code == 403
    field_denials = [entry for entry in audit.audit_entries if entry["action"] == "field.denied"]
    assert [entry["correlation_id"] for entry in field_denials] == ["corr-log-2"]


def test_conversion_event_includes_correlation_id(client: TestClient, db_session: Session) -> None:
    db_session.add(CatalogProduct(name="Widget A", sku="WA", price=Decimal("100.00")))
    db_session.add(
        PipelineRecord(
            reference_no="LE2615100001",
            owner_user_id=7,
            status="opp_prospecting",
            lead_name="Corr Customer",
            product_interest="Widget A",
        )
    )
    db_session.commit()

    response = client.post("/opportunities/1/convert-sq", headers={"X-Correlation-Id": "corr-event-1"})
    assert response.status_code == 201

    converted = [
        item for item in events.published_events if item.get("event_type") == "pipeline.opportunity.converted"
    ]
    assert converted
    assert converted[-1].get("correlation_id") == "corr-event-1"
