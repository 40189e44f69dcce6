from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql import ColumnElement, Select

from salesflow.pipeline.statuses import Stage, StatusKind, stored_values_for
from salesflow.platform.security.context import Principal
from salesflow.platform.security.fls import OwnedRecord, validate_admin_correction, validate_field_update
from salesflow.platform.security.rls import VisibilityScope, apply_visibility_filter, scope_for
from salesflow.platform.security.roles import Domain


class BaseRepository:
    domain: Domain = Domain.LEADS

    def scope_for(self, principal: Principal | None, domain: Domain | None = None) -> VisibilityScope:
        return scope_for(principal, domain or self.domain)

    def apply_scope_query(self, query: Select[Any], scope: VisibilityScope) -> Select[Any]:
        return apply_visibility_filter(query, scope)

    def status_clause(
        self,
        column: InstrumentedAttribute[str],
        stages: Iterable[Stage],
        kind: StatusKind = StatusKind.PIPELINE,
    ) -> ColumnElement[bool]:
        # Same folding as canonicalize(), so legacy spellings match too.
        normalized = func.replace(func.replace(func.lower(func.trim(column)), " ", "_"), "-", "_")
        return normalized.in_(stored_values_for(stages, kind))

    def validate_field_update(
        self,
        principal: Principal | None,
        record: OwnedRecord,
        field_name: str,
        proposed: Any = None,
    ) -> None:
        validate_field_update(principal, record, field_name, proposed)

    def validate_admin_correction(self, principal: Principal | None, record: OwnedRecord, field_name: str) -> None:
        validate_admin_correction(principal, record, field_name)
