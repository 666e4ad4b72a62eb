"""Pre-filter making sure every request carries a correlation id."""

from services.api_gateway.app.pipeline.base import FilterType, GatewayFilter, RequestContext
from shared.errors import FilterAbort
from shared.utils.context import (
    AUTH_TOKEN_HEADER,
    CORRELATION_ID_HEADER,
    ORG_ID_HEADER,
    USER_ID_HEADER,
    is_valid_correlation_id,
)
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class TrackingFilter(GatewayFilter):
    """Copy the tmx-* headers into the correlation context.

    The context already holds a freshly generated id; it is replaced only
    when the caller sent one. A malformed inbound id rejects the request.
    """

    filter_type = FilterType.PRE
    order = 1

    async def run(self, ctx: RequestContext) -> None:
        headers = ctx.request.headers
        correlation = ctx.correlation

        inbound_id = headers.get(CORRELATION_ID_HEADER)
        if inbound_id is not None:
            if not is_valid_correlation_id(inbound_id):
                raise FilterAbort(
                    f"Malformed {CORRELATION_ID_HEADER} header",
                    status_code=400,
                    error_code="INVALID_CORRELATION_ID",
                )
            correlation.correlation_id = inbound_id
            logger.debug("correlation_id_found", path=ctx.request.path)
        else:
            logger.debug("correlation_id_generated", path=ctx.request.path)

        correlation.auth_token = headers.get(AUTH_TOKEN_HEADER) or headers.get("authorization", "")
        correlation.user_id = headers.get(USER_ID_HEADER, "")
        correlation.org_id = headers.get(ORG_ID_HEADER, "")

        logger.debug("processing_request", method=ctx.request.method, path=ctx.request.path)
