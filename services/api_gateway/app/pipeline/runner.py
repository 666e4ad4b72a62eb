"""Ordered execution of pre, route and post filters."""

import json
from typing import Iterable

from services.api_gateway.app.pipeline.base import (
    FilterType,
    GatewayFilter,
    GatewayRequest,
    GatewayResponse,
    RequestContext,
)
from shared.errors import FilterAbort, GatewayError
from shared.schemas.api_responses import ErrorResponse
from shared.utils.context import CorrelationContext, peek, request_scope
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def error_response(
    error: GatewayError,
    correlation_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> GatewayResponse:
    """Terminal response carrying the standard error envelope."""
    body = ErrorResponse.from_error(error, correlation_id).model_dump(exclude_none=True)
    return GatewayResponse(
        status_code=error.status_code,
        headers={"content-type": "application/json", **(headers or {})},
        body=json.dumps(body).encode(),
    )


class GatewayPipeline:
    """Runs PRE -> ROUTE -> POST filters over one request.

    Each request gets its own correlation context scope, which is unbound
    when ``handle`` returns. When the caller already bound a context (the
    HTTP middleware does) its correlation id is reused; nothing else is
    shared.
    """

    def __init__(self, filters: Iterable[GatewayFilter]):
        # sorted() is stable, so equal orders keep registration order
        filters = list(filters)
        self._filters: dict[FilterType, list[GatewayFilter]] = {
            filter_type: sorted(
                (f for f in filters if f.filter_type == filter_type),
                key=lambda f: f.order,
            )
            for filter_type in FilterType
        }

    def filters(self, filter_type: FilterType) -> list[GatewayFilter]:
        return list(self._filters[filter_type])

    async def handle(self, request: GatewayRequest) -> GatewayResponse:
        """Process one inbound request and always return a response."""
        outer = peek()
        seed = CorrelationContext(correlation_id=outer.correlation_id) if outer else None
        with request_scope(seed) as correlation:
            ctx = RequestContext(request=request, correlation=correlation)

            try:
                await self._run_stage(FilterType.PRE, ctx)
                await self._run_stage(FilterType.ROUTE, ctx)
                if ctx.response is None:
                    raise FilterAbort(
                        f"No route for {request.path}",
                        status_code=404,
                        error_code="ROUTE_NOT_FOUND",
                    )
            except GatewayError as e:
                logger.info(
                    "request_terminated",
                    path=request.path,
                    status_code=e.status_code,
                    error_code=e.error_code,
                )
                ctx.response = error_response(e, correlation.correlation_id)
            except Exception as e:
                logger.exception("filter_error", path=request.path, error=str(e))
                ctx.response = error_response(
                    GatewayError(
                        "An internal error occurred",
                        status_code=500,
                        error_code="INTERNAL_ERROR",
                    ),
                    correlation.correlation_id,
                )

            await self._run_post(ctx)
            return ctx.response

    async def _run_stage(self, filter_type: FilterType, ctx: RequestContext) -> None:
        for gateway_filter in self._filters[filter_type]:
            if gateway_filter.should_filter(ctx):
                await gateway_filter.run(ctx)

    async def _run_post(self, ctx: RequestContext) -> None:
        for gateway_filter in self._filters[FilterType.POST]:
            try:
                if gateway_filter.should_filter(ctx):
                    await gateway_filter.run(ctx)
            except Exception as e:
                # Keep the response; a decoration failure must not replace it
                logger.exception("post_filter_error", filter=gateway_filter.name, error=str(e))
