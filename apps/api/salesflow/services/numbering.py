from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session

from salesflow.core.config import get_settings


def next_document_number(
    session: Session,
    column: InstrumentedAttribute[str],
    prefix: str,
    *,
    suffix: str = "",
    now: datetime | None = None,
) -> str:
    """Next number of the form ``<prefix><yy><company><mm><seq:04d><suffix>``.

    The sequence restarts every month and continues from the highest number
    already issued under the same period prefix.
    """

    moment = now or datetime.now(timezone.utc)
    period_prefix = f"{prefix}{moment:%y}{get_settings().document_company_code}{moment:%m}"
    last = session.scalar(
        select(column).where(column.like(f"{period_prefix}%")).order_by(column.desc()).limit(1)
    )

    sequence = 1
    if last:
        digits = last[len(period_prefix):len(period_prefix) + 4]
        if digits.isdigit():
            sequence = int(digits) + 1
    return f"{period_prefix}{sequence:04d}{suffix}"
