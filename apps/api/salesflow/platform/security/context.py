from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """The acting user, as resolved by the authentication layer.

    ``role`` is the raw role name carried by the identity; it is only ever
    interpreted through :func:`salesflow.platform.security.roles.classify`.
    """

    user_id: int
    role: str | None = None
    correlation_id: str | None = None
