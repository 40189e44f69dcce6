from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from salesflow.api.errors import register_exception_handlers
from salesflow.api.routes import router as api_router
from salesflow.core.config import get_settings
from salesflow.core.events import InternalEvent, event_bus
from salesflow.logging import configure_logging
from salesflow.middleware.request_context import RequestContextMiddleware
from salesflow.otel import correlation_request_hook, setup_otel


settings = get_settings()
configure_logging(settings)
logger = logging.getLogger("salesflow.lifecycle")

CONVERSION_EVENT_TYPES = (
    "pipeline.lead.converted",
    "pipeline.opportunity.converted",
    "revenue.quotation.converted",
)


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_conversion_event(event: InternalEvent) -> None:
    logger.info(
        "conversion_event",
        extra={
            "event_name": event.name,
            "record_id": event.payload.get("record_id"),
            "quotation_id": event.payload.get("quotation_id"),
            "sales_order_id": event.payload.get("sales_order_id"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # subscribe() ignores handlers that are already registered
    event_bus.subscribe("system.started", _on_system_started)
    for event_name in CONVERSION_EVENT_TYPES:
        event_bus.subscribe(event_name, _on_conversion_event)
    event_bus.dispatch("system.started", {"service": settings.app_name})
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
register_exception_handlers(app)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=correlation_request_hook)
