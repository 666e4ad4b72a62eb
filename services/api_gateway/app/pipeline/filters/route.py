"""Route filter: resolve the target service and call it through its command."""

from typing import Sequence

import httpx

from services.api_gateway.app.pipeline.base import (
    FilterType,
    GatewayFilter,
    GatewayResponse,
    RequestContext,
)
from services.api_gateway.app.routing.routes import RouteTable
from shared.discovery import LoadBalancedInvoker, ServiceInstance, ServiceRegistry
from shared.errors import FilterAbort, RoutingFailure
from shared.resilience import Command, CommandRegistry
from shared.schemas.api_responses import ErrorResponse
from shared.utils.logging import get_logger

logger = get_logger(__name__)

FALLBACK_HEADER = "tmx-fallback"
FALLBACK_REASON_HEADER = "tmx-fallback-reason"

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)
FORWARDED_FOR_HEADER = "x-forwarded-for"
FORWARDED_PREFIX_HEADER = "x-forwarded-prefix"
_REQUEST_EXCLUDED = HOP_BY_HOP_HEADERS | {
    "host",
    "content-length",
    FORWARDED_FOR_HEADER,
    FORWARDED_PREFIX_HEADER,
}
_RESPONSE_EXCLUDED = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def forwardable_headers(
    headers: httpx.Headers, excluded: frozenset[str]
) -> list[tuple[str, str]]:
    return [(name, value) for name, value in headers.multi_items() if name.lower() not in excluded]


def forwarded_headers(ctx: RequestContext) -> list[tuple[str, str]]:
    """X-Forwarded-* headers describing the hop through the gateway."""
    request = ctx.request
    forwarded = []
    if request.client_host:
        prior = request.headers.get(FORWARDED_FOR_HEADER)
        chain = f"{prior}, {request.client_host}" if prior else request.client_host
        forwarded.append((FORWARDED_FOR_HEADER, chain))
    if ctx.route_prefix and ctx.downstream_path != request.path:
        prior = request.headers.get(FORWARDED_PREFIX_HEADER, "")
        forwarded.append((FORWARDED_PREFIX_HEADER, prior.rstrip("/") + ctx.route_prefix))
    return forwarded


def build_fallback_response(
    service_id: str,
    instances: Sequence[ServiceInstance],
    method: str,
    path: str,
    headers: list[tuple[str, str]] | None = None,
    params: str = "",
    content: bytes = b"",
) -> GatewayResponse:
    """Degraded response served when a service call cannot complete.

    Depends only on its arguments, so repeated calls give equal responses.
    """
    body = ErrorResponse(
        error_code="SERVICE_DEGRADED",
        error_message=f"Service {service_id} is temporarily unavailable",
        details={"service": service_id, "method": method, "path": path},
    )
    return GatewayResponse(
        status_code=503,
        headers={"content-type": "application/json", FALLBACK_HEADER: "true"},
        body=body.model_dump_json(exclude_none=True).encode(),
        is_fallback=True,
    )


class RouteFilter(GatewayFilter):
    """Resolve instances from the registry and forward through the breaker.

    An empty instance list is a routing failure and never reaches the
    command, so it does not count against the service's circuit.
    """

    filter_type = FilterType.ROUTE
    order = 1

    def __init__(
        self,
        routes: RouteTable,
        registry: ServiceRegistry,
        invoker: LoadBalancedInvoker,
        commands: CommandRegistry,
    ):
        self.routes = routes
        self.registry = registry
        self.invoker = invoker
        self.commands = commands
        for service_id in routes.service_ids():
            self.command_for(service_id)

    def command_for(self, service_id: str) -> Command:
        """Command protecting calls to ``service_id``; created on first use."""
        return self.commands.get(service_id) or self.commands.register(
            service_id,
            self._forward,
            fallback=build_fallback_response,
        )

    async def run(self, ctx: RequestContext) -> None:
        request = ctx.request
        match = self.routes.match(request.path)
        if match is None:
            raise FilterAbort(
                f"No route for {request.path}",
                status_code=404,
                error_code="ROUTE_NOT_FOUND",
            )

        ctx.service_id = match.service_id
        ctx.route_prefix = match.prefix
        ctx.downstream_path = match.downstream_path

        instances = await self.registry.resolve(match.service_id)
        if not instances:
            logger.warning("no_instances_available", service=match.service_id)
            raise RoutingFailure(match.service_id)

        logger.debug(
            "route_resolved",
            service=match.service_id,
            path=match.downstream_path,
            instances=len(instances),
        )

        command = self.command_for(match.service_id)
        result = await command.execute(
            match.service_id,
            instances,
            request.method,
            match.downstream_path,
            forwardable_headers(request.headers, _REQUEST_EXCLUDED) + forwarded_headers(ctx),
            request.query_string,
            request.body,
        )

        response = result.value
        if result.is_fallback:
            response.headers[FALLBACK_REASON_HEADER] = result.failure_reason or "failure"
        ctx.response = response

    async def _forward(
        self,
        service_id: str,
        instances: Sequence[ServiceInstance],
        method: str,
        path: str,
        headers: list[tuple[str, str]] | None = None,
        params: str = "",
        content: bytes = b"",
    ) -> GatewayResponse:
        response = await self.invoker.send(
            service_id,
            instances,
            method,
            path,
            headers=headers,
            params=httpx.QueryParams(params) if params else None,
            content=content or None,
        )
        return GatewayResponse(
            status_code=response.status_code,
            headers=forwardable_headers(response.headers, _RESPONSE_EXCLUDED),
            body=response.content,
        )
