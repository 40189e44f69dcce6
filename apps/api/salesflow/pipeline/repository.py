from __future__ import annotations

from salesflow.platform.security.repository import BaseRepository
from salesflow.platform.security.roles import Domain


class PipelineRecordRepository(BaseRepository):
    domain = Domain.LEADS
