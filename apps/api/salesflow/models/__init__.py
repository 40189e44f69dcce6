from salesflow.business.catalog.models import CatalogProduct
from salesflow.business.revenue.models import Quotation, QuotationLine, SalesOrder, SalesOrderLine
from salesflow.models.audit import UserLog
from salesflow.pipeline.models import Customer, PipelineRecord

__all__ = [
    "CatalogProduct",
    "Customer",
    "PipelineRecord",
    "Quotation",
    "QuotationLine",
    "SalesOrder",
    "SalesOrderLine",
    "UserLog",
]
