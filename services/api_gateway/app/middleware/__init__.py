"""Gateway middleware."""

from services.api_gateway.app.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
