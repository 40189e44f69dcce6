from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import or_
from sqlalchemy.sql import Select

from salesflow.services import audit
from salesflow.metrics import observe_visibility_denied
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import Forbidden, Unauthorized
from salesflow.platform.security.roles import Domain, classify


@dataclass(frozen=True, slots=True)
class VisibilityScope:
    """Row filter a list query must carry before it reaches the database."""

    domain: Domain
    user_id: int
    unrestricted: bool

    def allows(self, owner_user_id: int | None, assigned_to: int | None) -> bool:
        if self.unrestricted:
            return True
        return self.user_id in {owner_user_id, assigned_to}


def is_owner_or_assignee(principal: Principal, owner_user_id: int | None, assigned_to: int | None) -> bool:
    return principal.user_id in {owner_user_id, assigned_to}


def scope_for(principal: Principal | None, domain: Domain) -> VisibilityScope:
    """Resolve the visibility scope of ``principal`` in ``domain``.

    Superusers and the domain manager see everything, the domain operator sees
    records they own or are assigned, and every other role is refused.
    """

    if principal is None:
        raise Unauthorized()

    roles = classify(principal)
    if roles.is_manager(domain):
        return VisibilityScope(domain=domain, user_id=principal.user_id, unrestricted=True)
    if roles.is_operator(domain):
        return VisibilityScope(domain=domain, user_id=principal.user_id, unrestricted=False)

    _emit_visibility_denied(principal, domain)
    raise Forbidden(f"role may not list {domain.value.replace('_', ' ')}")


def apply_visibility_filter(query: Select[Any], scope: VisibilityScope) -> Select[Any]:
    """Add the owner/assignee predicate to every owner-scoped entity in ``query``."""

    if scope.unrestricted:
        return query

    applied = False
    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None:
            continue
        if hasattr(model, "owner_user_id") and hasattr(model, "assigned_to"):
            query = query.where(
                or_(
                    getattr(model, "owner_user_id") == scope.user_id,
                    getattr(model, "assigned_to") == scope.user_id,
                )
            )
            applied = True

    if not applied:
        raise ValueError(f"query has no owner-scoped entity for domain '{scope.domain.value}'")
    return query


def _emit_visibility_denied(principal: Principal, domain: Domain) -> None:
    observe_visibility_denied(domain=domain.value)
    audit.record(
        actor_user_id=principal.user_id,
        entity_type="security.visibility",
        entity_id=domain.value,
        action="visibility.denied",
        before=None,
        after={
            "domain": domain.value,
            "role": principal.role,
            "user_id": principal.user_id,
        },
        correlation_id=principal.correlation_id,
    )
