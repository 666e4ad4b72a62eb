"""Filters run by the gateway pipeline."""

from services.api_gateway.app.pipeline.filters.auth import AuthenticationFilter
from services.api_gateway.app.pipeline.filters.response import ResponseFilter
from services.api_gateway.app.pipeline.filters.route import RouteFilter, build_fallback_response
from services.api_gateway.app.pipeline.filters.tracking import TrackingFilter

__all__ = [
    "AuthenticationFilter",
    "ResponseFilter",
    "RouteFilter",
    "TrackingFilter",
    "build_fallback_response",
]
