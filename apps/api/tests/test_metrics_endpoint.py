from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesflow.business.catalog.models import CatalogProduct
from salesflow.core.auth import get_current_principal
from salesflow.core.config import get_settings
from salesflow.core.database import Base, get_db
from salesflow.main import app
from salesflow.pipeline.models import PipelineRecord
from salesflow.platform.security.context import Principal


PRINCIPALS: dict[str, Principal | None] = {
    "superuser": Principal(user_id=1, role="superuser"),
    "sales": Principal(user_id=7, role="sales"),
    "anonymous": None,
}


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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    state = {"current": "sales"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_principal() -> Principal | None:
        return PRINCIPALS[state["current"]]

    def set_principal(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = override_get_current_principal
    with TestClient(app) as test_client:
        yield test_client, set_principal
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_conversion_metrics(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_principal = client
    db_session.add(CatalogProduct(name="Widget A", sku="WA", price=Decimal("100.00")))
    db_session.add(
        PipelineRecord(
            reference_no="LE2615100001",
            owner_user_id=7,
            status="opp_prospecting",
            lead_name="Metrics Customer",
            product_interest="Widget A",
        )
    )
    db_session.commit()

    health = test_client.get("/health")
    assert health.status_code == 200

    converted = test_client.post("/opportunities/1/convert-sq")
    assert converted.status_code == 201

    set_principal("anonymous")
    assert test_client.get("/leads").status_code == 401

    set_principal("superuser")
    metrics = test_client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "pipeline_conversions_total" in body
    assert "pipeline_conversion_duration_seconds" in body

    assert 'path="/health"' in body
    assert 'path="/opportunities/{id}/convert-sq"' in body
    assert 'conversion="opportunity_to_quotation",outcome="success"' in body


def test_metrics_require_superuser(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_principal = client

    forbidden = test_client.get("/metrics")
    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "only superuser may read metrics"

    set_principal("anonymous")
    assert test_client.get("/metrics").status_code == 401


def test_metrics_hidden_when_disabled(
    client: tuple[TestClient, Callable[[str], None]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, set_principal = client
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()
    set_principal("superuser")

    assert test_client.get("/metrics").status_code == 404
