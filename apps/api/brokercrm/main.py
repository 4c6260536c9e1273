from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from brokercrm.api.routes import router as api_router
from brokercrm.core.config import get_settings
from brokercrm.logging import configure_logging
from brokercrm.middleware.correlation_id import CorrelationIdMiddleware
from brokercrm.middleware.request_logging import RequestLoggingMiddleware
from brokercrm.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("brokercrm.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("system.started")
    yield
    logger.info("system.stopped")


app = FastAPI(title="Brokerage CRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
