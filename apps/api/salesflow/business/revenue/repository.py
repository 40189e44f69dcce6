from __future__ import annotations

from salesflow.platform.security.repository import BaseRepository
from salesflow.platform.security.roles import Domain


class QuotationRepository(BaseRepository):
    domain = Domain.QUOTATIONS


class SalesOrderRepository(BaseRepository):
    domain = Domain.SALES_ORDERS
