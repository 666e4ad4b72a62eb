"""Gateway filter pipeline."""

from services.api_gateway.app.pipeline.base import (
    FilterType,
    GatewayFilter,
    GatewayRequest,
    GatewayResponse,
    Principal,
    RequestContext,
)
from services.api_gateway.app.pipeline.runner import GatewayPipeline, error_response

__all__ = [
    "FilterType",
    "GatewayFilter",
    "GatewayPipeline",
    "GatewayRequest",
    "GatewayResponse",
    "Principal",
    "RequestContext",
    "error_response",
]
