from fastapi import APIRouter, Depends
from fastapi.responses import Response

from salesflow.business.catalog.api import router as catalog_router
from salesflow.business.revenue.api import quotations_router, sales_orders_router
from salesflow.core.auth import get_current_principal
from salesflow.core.config import get_settings
from salesflow.metrics import generate_metrics_payload, metrics_content_type
from salesflow.pipeline.api import leads_router, opportunities_router, records_router
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import Forbidden, NotFoundError, Unauthorized
from salesflow.platform.security.roles import classify

router = APIRouter()
router.include_router(leads_router)
router.include_router(opportunities_router)
router.include_router(records_router)
router.include_router(quotations_router)
router.include_router(sales_orders_router)
router.include_router(catalog_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(principal: Principal | None = Depends(get_current_principal)) -> dict[str, int | str | None]:
    if principal is None:
        raise Unauthorized()
    return {
        "user_id": principal.user_id,
        "role": principal.role,
    }


@router.get("/metrics", tags=["system"])
def metrics(principal: Principal | None = Depends(get_current_principal)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFoundError("not found")
    if principal is None:
        raise Unauthorized()
    if not classify(principal).is_superuser:
        raise Forbidden("only superuser may read metrics")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
