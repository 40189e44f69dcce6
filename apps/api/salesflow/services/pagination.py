from __future__ import annotations

from salesflow.core.config import get_settings


def clamp_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None or limit <= 0:
        return settings.list_default_limit
    return min(limit, settings.list_max_limit)
