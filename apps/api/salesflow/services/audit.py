from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from salesflow.context import get_correlation_id
from salesflow.models.audit import UserLog
from salesflow.platform.security.context import Principal


# Process-local trail of policy denials. They are never persisted because the
# transaction they belong to does not commit; mutations are recorded as
# user_log rows instead.
audit_entries: list[dict[str, Any]] = []


def record(
    *,
    actor_user_id: int | None,
    entity_type: str,
    entity_id: int | str,
    action: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry


def write_user_log(
    db: Session,
    principal: Principal,
    *,
    activity: str,
    entity_type: str,
    entity_id: int | str,
    old_data: dict[str, Any] | None = None,
    new_data: dict[str, Any] | None = None,
    method: str = "POST",
    endpoint: str | None = None,
) -> UserLog:
    """Stage a user log row.

    The row is only added to the session; it is committed or rolled back by
    the caller together with the mutation it describes.
    """

    entry = UserLog(
        user_id=principal.user_id,
        activity=activity,
        method=method,
        endpoint=endpoint,
        entity_type=entity_type,
        entity_id=str(entity_id),
        old_data=old_data,
        new_data=new_data,
        correlation_id=principal.correlation_id or get_correlation_id(),
    )
    db.add(entry)
    return entry
