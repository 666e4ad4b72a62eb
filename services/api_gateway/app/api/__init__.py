"""API routes for API Gateway."""

from services.api_gateway.app.api.health import router as health_router
from services.api_gateway.app.api.proxy import router as proxy_router

__all__ = [
    "health_router",
    "proxy_router",
]
