from __future__ import annotations

from jose import JWTError, jwt
from starlette.requests import Request

from salesflow.context import get_correlation_id
from salesflow.core.config import get_settings
from salesflow.platform.security.context import Principal


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""


def decode_principal(token: str, correlation_id: str | None = None) -> Principal | None:
    """Decode a bearer token into a principal; any unusable token yields no principal."""

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    try:
        user_id = int(str(payload.get("sub", "")))
    except ValueError:
        return None
    if user_id <= 0:
        return None

    role = payload.get("role")
    return Principal(
        user_id=user_id,
        role=str(role) if isinstance(role, str) else None,
        correlation_id=correlation_id,
    )


async def get_current_principal(request: Request) -> Principal | None:
    token = _bearer_token(request)
    if not token:
        return None
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return decode_principal(token, correlation_id)


def issue_token(user_id: int, role: str | None) -> str:
    settings = get_settings()
    claims: dict[str, object] = {"sub": str(user_id)}
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
