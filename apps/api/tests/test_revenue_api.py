from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesflow.business.catalog.models import CatalogProduct
from salesflow.business.revenue.models import SalesOrder
from salesflow.business.revenue.service import MANUAL_SALES_ORDER_MESSAGE
from salesflow.core import events
from salesflow.core.auth import get_current_principal
from salesflow.core.config import get_settings
from salesflow.core.database import Base, get_db
from salesflow.main import app
from salesflow.pipeline.models import PipelineRecord
from salesflow.platform.security.context import Principal
from salesflow.services import audit


PRINCIPALS: dict[str, Principal | None] = {
    "sales": Principal(user_id=7, role="sales"),
    "manager": Principal(user_id=20, role="manager-sales"),
    "finance": Principal(user_id=30, role="finance"),
    "warehouse": Principal(user_id=40, role="warehouse"),
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
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
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


def _quotation(test_client: TestClient, db: Session) -> dict:
    db.add(CatalogProduct(name="Widget A", sku="WA", price=Decimal("100.00")))
    db.add(
        PipelineRecord(
            reference_no="LE2615100001",
            owner_user_id=7,
            status="opp_prospecting",
            lead_name="Acme Trading",
            product_interest="Widget A",
        )
    )
    db.commit()
    response = test_client.post("/opportunities/1/convert-sq")
    assert response.status_code == 201
    return response.json()


def test_manual_sales_order_creation_is_not_allowed(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.post("/sales-orders", json={"customer_id": 1})

    assert response.status_code == 405
    body = response.json()
    assert body["code"] == "manual_sales_order_not_allowed"
    assert body["message"] == MANUAL_SALES_ORDER_MESSAGE
    assert body["correlation_id"] == response.headers.get("x-correlation-id")


def test_quotation_approval_and_sales_order_conversion(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_principal = client
    quotation = _quotation(test_client, db_session)

    early = test_client.post(f"/quotations/{quotation['id']}/convert-so")
    assert early.status_code == 409
    assert early.json()["message"] == "only approved quotations may convert to a sales order"

    submitted = test_client.post(f"/quotations/{quotation['id']}/submit")
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "sq_submitted"

    self_approve = test_client.post(f"/quotations/{quotation['id']}/approve")
    assert self_approve.status_code == 403

    set_principal("manager")
    approved = test_client.post(f"/quotations/{quotation['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["status_label"] == "Approved"

    set_principal("sales")
    converted = test_client.post(f"/quotations/{quotation['id']}/convert-so")
    assert converted.status_code == 201
    order = converted.json()
    assert order["sale_no"].startswith("SO")
    assert order["quotation_id"] == quotation["id"]
    assert order["payment_status"] == "unpaid"
    assert Decimal(order["total"]) == Decimal("100")

    again = test_client.post(f"/quotations/{quotation['id']}/convert-so")
    assert again.status_code == 409
    assert db_session.scalar(select(func.count()).select_from(SalesOrder)) == 1


def test_sales_order_status_and_payment_routes(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_principal = client
    quotation = _quotation(test_client, db_session)
    test_client.post(f"/quotations/{quotation['id']}/submit")
    set_principal("manager")
    test_client.post(f"/quotations/{quotation['id']}/approve")
    set_principal("sales")
    order_id = test_client.post(f"/quotations/{quotation['id']}/convert-so").json()["id"]

    opened = test_client.post(f"/sales-orders/{order_id}/status", json={"status": "open"})
    assert opened.status_code == 200

    set_principal("warehouse")
    too_early = test_client.post(f"/sales-orders/{order_id}/status", json={"status": "completed"})
    assert too_early.status_code == 409

    set_principal("finance")
    listing = test_client.get("/sales-orders")
    assert listing.status_code == 403
    assert listing.json()["message"] == "role may not list sales orders"

    paid = test_client.post(f"/sales-orders/{order_id}/payment", json={"payment_status": "paid"})
    assert paid.status_code == 200
    assert paid.json()["payment_status"] == "paid"

    unknown = test_client.post(f"/sales-orders/{order_id}/status", json={"status": "shipped"})
    assert unknown.status_code == 422

    set_principal("sales")
    visible = test_client.get("/sales-orders", params={"payment_status": "paid"})
    assert [item["id"] for item in visible.json()] == [order_id]


def test_quotation_listing(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_principal = client
    quotation = _quotation(test_client, db_session)

    listed = test_client.get("/quotations", params={"status": "draft"})
    assert [item["id"] for item in listed.json()] == [quotation["id"]]

    fetched = test_client.get(f"/quotations/{quotation['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["lines"][0]["product_name"] == "Widget A"

    set_principal("finance")
    assert test_client.get("/quotations").status_code == 403
