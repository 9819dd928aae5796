"""FastAPI application entry point for the Subscriber node."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from services.subscriber.config import get_settings
from services.subscriber.constants import ECHO_RESPONSE
from services.subscriber.dependencies import (
    Orchestrator,
    create_http_client,
    create_orchestrator,
)
from services.subscriber.schemas import HealthResponse, SubscriptionStatusResponse
from shared.logging_config import setup_logging
from shared.security.filters import SecurityFilterMiddleware, SecurityFilters

# Configure logging before creating logger
settings = get_settings()
setup_logging(debug=settings.debug)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Joins the mesh on startup and removes the node's subscriptions on
    shutdown. Any startup failure aborts the application.
    """
    # Startup
    http = create_http_client(settings)
    try:
        orchestrator = create_orchestrator(settings, http)
        app.state.orchestrator = orchestrator
        app.state.security_filters = await orchestrator.on_start()
    except Exception:
        await http.aclose()
        raise

    logger.info(f"{settings.app_name} started as {settings.client_system_name}")

    yield

    # Shutdown - tear down subscriptions before the HTTP client goes away
    try:
        await orchestrator.on_stop()
    finally:
        await http.aclose()
        logger.info("HTTP client closed")


app = FastAPI(
    title=settings.app_name,
    description="Subscriber node of the service mesh",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Filters stay inactive until the lifespan installs them
app.state.security_filters = SecurityFilters()
app.add_middleware(SecurityFilterMiddleware, client_cn_header=settings.client_cert_cn_header)


@app.get("/echo", response_class=PlainTextResponse, tags=["Mesh"])
def echo() -> str:
    """Reachability probe used by other mesh systems."""
    return ECHO_RESPONSE


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns service health status.
    """
    return HealthResponse(
        status="healthy",
        service="subscriber-node",
        version="0.1.0",
    )


@app.get("/subscriptions", response_model=SubscriptionStatusResponse, tags=["Subscriptions"])
def subscription_status(orchestrator: Orchestrator) -> SubscriptionStatusResponse:
    """Last-known state of the node's event subscriptions."""
    filters = orchestrator.filters
    return SubscriptionStatusResponse(
        broker_available=orchestrator.broker_available,
        token_security_active=filters.token_filter is not None,
        notification_filter_active=filters.notification_filter is not None,
        subscriptions=orchestrator.manager.states,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.subscriber.main:app",
        host="0.0.0.0",
        port=settings.server_port,
        reload=settings.debug,
    )
