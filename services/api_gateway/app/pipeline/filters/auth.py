"""Pre-filter delegating credential checks to the authentication service."""

from services.api_gateway.app.auth.client import Authenticator
from services.api_gateway.app.pipeline.base import FilterType, GatewayFilter, RequestContext
from shared.errors import FilterAbort
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class AuthenticationFilter(GatewayFilter):
    """Reject requests whose credential the authenticator does not accept."""

    filter_type = FilterType.PRE
    order = 2

    def __init__(self, authenticator: Authenticator):
        self.authenticator = authenticator

    async def run(self, ctx: RequestContext) -> None:
        credential = ctx.correlation.auth_token
        principal = await self.authenticator.authenticate(credential) if credential else None

        if principal is None:
            logger.info("authentication_rejected", path=ctx.request.path)
            raise FilterAbort(
                "Not authenticated",
                status_code=401,
                error_code="NOT_AUTHENTICATED",
            )

        ctx.principal = principal
        if not ctx.correlation.user_id:
            ctx.correlation.user_id = principal.name
        logger.debug("user_authenticated", user=principal.name)
