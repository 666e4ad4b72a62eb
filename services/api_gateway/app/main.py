"""API Gateway - FastAPI application entry point."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from services.api_gateway.app.api import health_router, proxy_router
from services.api_gateway.app.auth.client import Authenticator
from services.api_gateway.app.config import Settings, get_settings
from services.api_gateway.app.dependencies import build_components
from services.api_gateway.app.middleware import CorrelationMiddleware
from services.api_gateway.app.middleware.correlation import request_correlation_id
from shared.discovery import ServiceRegistry
from shared.utils.context import CORRELATION_ID_HEADER
from shared.utils.logging import configure_logging, get_logger
from shared.utils.metrics import MetricsMiddleware, metrics_endpoint

settings = get_settings()

# Configure logging
configure_logging(
    service_name=settings.service_name,
    log_level=settings.log_level,
    json_format=settings.log_json,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("starting_service", service=app.state.gateway.settings.service_name)

    yield

    logger.info("shutting_down_service")
    await app.state.gateway.close()
    logger.info("service_shutdown_complete")


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for errors outside the pipeline."""
    correlation_id = request_correlation_id(request)
    logger.exception("unhandled_exception", error=str(exc), correlation_id=correlation_id)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error_code": "INTERNAL_ERROR",
            "error_message": "An internal error occurred",
            "correlation_id": correlation_id,
        },
        headers={CORRELATION_ID_HEADER: correlation_id},
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    registry: ServiceRegistry | None = None,
    authenticator: Authenticator | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the gateway application.

    Components are composed here, once, so every request shares the same
    commands and circuit state.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Gateway",
        description="Edge gateway routing requests to registered services",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.gateway = build_components(
        app_settings,
        registry=registry,
        authenticator=authenticator,
        transport=transport,
    )

    app.add_middleware(MetricsMiddleware)
    # Outermost, so every other layer runs inside the correlation scope
    app.add_middleware(CorrelationMiddleware)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_route("/metrics", metrics_endpoint)
    app.include_router(health_router)
    # Catch-all proxy route must stay last
    app.include_router(proxy_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.api_gateway.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
