from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from boaz.api.routes import router as api_router
from boaz.core.config import get_settings
from boaz.core.context import RequestContextMiddleware
from boaz.core.envelope import register_exception_handlers
from boaz.core.events import InternalEvent, event_bus
from boaz.logging import configure_logging
from boaz.middleware.correlation_id import CorrelationIdMiddleware
from boaz.middleware.rate_limit import MutationRateLimitMiddleware
from boaz.middleware.request_logging import RequestLoggingMiddleware
from boaz.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("boaz.lifecycle")
_subscriptions_registered = False

_domain_event_types = [
    "scheduler.appointment.booked",
    "scheduler.appointment.cancelled",
    "scheduler.appointment.reminder_due",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_domain_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    appointment_id = payload.get("appointment_id") if isinstance(payload, dict) else None
    logger.info("domain_event", extra={"event_name": event.name, "appointment_id": appointment_id})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _domain_event_types:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title="BOAZ-OS API", version="0.1.0", lifespan=lifespan)
app.add_middleware(MutationRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
