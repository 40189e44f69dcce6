from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesflow import models  # noqa: F401
from salesflow.core.database import Base
from salesflow.pipeline.models import PipelineRecord
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import Forbidden, Unauthorized
from salesflow.platform.security.rls import apply_visibility_filter, scope_for
from salesflow.platform.security.roles import Domain
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
def clear_audit() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    yield
    audit.audit_entries.clear()


def _seed(db_session: Session) -> None:
    db_session.add_all(
        [
            PipelineRecord(reference_no="LE-1", owner_user_id=10, assigned_to=None, lead_name="Own"),
            PipelineRecord(reference_no="LE-2", owner_user_id=99, assigned_to=10, lead_name="Assigned"),
            PipelineRecord(reference_no="LE-3", owner_user_id=99, assigned_to=98, lead_name="Foreign"),
        ]
    )
    db_session.commit()


def test_scope_requires_principal() -> None:
    with pytest.raises(Unauthorized):
        scope_for(None, Domain.LEADS)


def test_managers_and_superuser_are_unrestricted() -> None:
    assert scope_for(Principal(user_id=1, role="superuser"), Domain.SALES_ORDERS).unrestricted
    assert scope_for(Principal(user_id=2, role="manager-sales"), Domain.LEADS).unrestricted
    assert scope_for(Principal(user_id=3, role="manager-purchasing"), Domain.PURCHASE_ORDERS).unrestricted


def test_operator_scope_is_restricted_to_owner_or_assignee() -> None:
    scope = scope_for(Principal(user_id=10, role="sales"), Domain.OPPORTUNITIES)
    assert not scope.unrestricted
    assert scope.allows(10, None)
    assert scope.allows(99, 10)
    assert not scope.allows(99, 98)


def test_other_roles_are_refused_and_audited() -> None:
    with pytest.raises(Forbidden) as exc_info:
        scope_for(Principal(user_id=30, role="finance"), Domain.SALES_ORDERS)

    assert exc_info.value.reason == "role may not list sales orders"
    denied = [entry for entry in audit.audit_entries if entry["action"] == "visibility.denied"]
    assert denied
    assert denied[-1]["after"]["domain"] == "sales_orders"


def test_role_without_capability_is_refused() -> None:
    with pytest.raises(Forbidden):
        scope_for(Principal(user_id=31), Domain.LEADS)
    with pytest.raises(Forbidden):
        scope_for(Principal(user_id=32, role="manager-purchasing"), Domain.LEADS)


def test_apply_visibility_filter_limits_rows(db_session: Session) -> None:
    _seed(db_session)
    scope = scope_for(Principal(user_id=10, role="sales"), Domain.LEADS)

    rows = db_session.scalars(apply_visibility_filter(select(PipelineRecord), scope)).all()
    assert sorted(row.reference_no for row in rows) == ["LE-1", "LE-2"]


def test_apply_visibility_filter_leaves_unrestricted_query(db_session: Session) -> None:
    _seed(db_session)
    scope = scope_for(Principal(user_id=2, role="manager-sales"), Domain.LEADS)

    rows = db_session.scalars(apply_visibility_filter(select(PipelineRecord), scope)).all()
    assert len(rows) == 3
