"""Request routing."""

from services.api_gateway.app.routing.routes import RouteMatch, RouteTable

__all__ = [
    "RouteMatch",
    "RouteTable",
]
