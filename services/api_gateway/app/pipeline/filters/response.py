"""Post-filter echoing the correlation id back to the caller."""

from services.api_gateway.app.pipeline.base import FilterType, GatewayFilter, RequestContext
from shared.utils.context import CORRELATION_ID_HEADER, current
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ResponseFilter(GatewayFilter):
    """Add ``tmx-correlation-id`` to every response, terminal ones included."""

    filter_type = FilterType.POST
    order = 1

    def should_filter(self, ctx: RequestContext) -> bool:
        return ctx.response is not None

    async def run(self, ctx: RequestContext) -> None:
        correlation_id = current().correlation_id
        ctx.response.headers[CORRELATION_ID_HEADER] = correlation_id
        logger.debug(
            "completing_request",
            path=ctx.request.path,
            status_code=ctx.response.status_code,
            fallback=ctx.response.is_fallback,
        )
