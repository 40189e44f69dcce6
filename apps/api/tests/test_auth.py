from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from salesflow.core.auth import decode_principal, issue_token
from salesflow.core.config import get_settings
from salesflow.main import app


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_issued_token_decodes_to_principal() -> None:
    principal = decode_principal(issue_token(7, "sales"), correlation_id="auth-1")

    assert principal is not None
    assert principal.user_id == 7
    assert principal.role == "sales"
    assert principal.correlation_id == "auth-1"


def test_token_without_role_yields_roleless_principal() -> None:
    principal = decode_principal(issue_token(9, None))

    assert principal is not None
    assert principal.role is None


@pytest.mark.parametrize("sub", ["0", "-3", "abc", ""])
def test_unusable_subject_yields_no_principal(sub: str) -> None:
    token = jwt.encode({"sub": sub, "role": "sales"}, "test-secret", algorithm="HS256")

    assert decode_principal(token) is None


def test_token_signed_with_other_secret_is_rejected() -> None:
    token = jwt.encode({"sub": "7", "role": "sales"}, "other-secret", algorithm="HS256")

    assert decode_principal(token) is None
    assert decode_principal("not-a-jwt") is None


def test_me_resolves_bearer_token() -> None:
    with TestClient(app) as client:
        response = client.get("/me", headers={"Authorization": f"Bearer {issue_token(7, 'manager-sales')}"})
        anonymous = client.get("/me")

    assert response.status_code == 200
    assert response.json() == {"user_id": 7, "role": "manager-sales"}
    assert anonymous.status_code == 401
    assert anonymous.json()["code"] == "unauthorized"


def test_health() -> None:
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
