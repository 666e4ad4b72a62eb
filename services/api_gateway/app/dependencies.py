"""Composition of gateway components and FastAPI dependencies."""

import time
from dataclasses import dataclass
from typing import Annotated, Callable

import httpx
from fastapi import Depends, Request

from services.api_gateway.app.auth.client import Authenticator, RemoteAuthenticator
from services.api_gateway.app.config import Settings
from services.api_gateway.app.pipeline import GatewayFilter, GatewayPipeline
from services.api_gateway.app.pipeline.filters import (
    AuthenticationFilter,
    ResponseFilter,
    RouteFilter,
    TrackingFilter,
)
from services.api_gateway.app.routing import RouteTable
from shared.discovery import (
    EurekaServiceRegistry,
    LoadBalancedInvoker,
    ServiceRegistry,
    StaticServiceRegistry,
)
from shared.resilience import CommandRegistry
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class GatewayComponents:
    """Everything the gateway builds once at startup."""

    settings: Settings
    registry: ServiceRegistry
    invoker: LoadBalancedInvoker
    commands: CommandRegistry
    routes: RouteTable
    pipeline: GatewayPipeline
    authenticator: Authenticator | None = None

    async def close(self) -> None:
        await self.invoker.close()
        for resource in (self.registry, self.authenticator):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
        self.commands.shutdown()


def build_registry(settings: Settings) -> ServiceRegistry:
    """Registry implementation selected by ``registry_type``."""
    if settings.registry_type == "eureka":
        return EurekaServiceRegistry(
            settings.eureka_url,
            refresh_seconds=settings.registry_refresh_seconds,
            timeout=settings.registry_timeout_seconds,
            failure_backoff_seconds=settings.registry_failure_backoff_seconds,
            max_cached_services=settings.registry_max_cached_services,
        )
    return StaticServiceRegistry(settings.static_instances)


def build_components(
    settings: Settings,
    *,
    registry: ServiceRegistry | None = None,
    authenticator: Authenticator | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> GatewayComponents:
    """Wire registry, invoker, commands and filters into a pipeline.

    Args:
        settings: Gateway settings
        registry: Registry to use instead of the configured one
        authenticator: Authenticator to use instead of the configured one
        transport: Transport for downstream calls (tests)
        clock: Time source for circuit breakers
    """
    registry = registry or build_registry(settings)
    if authenticator is None and settings.auth_enabled:
        authenticator = RemoteAuthenticator(
            settings.auth_service_url,
            timeout=settings.auth_timeout_seconds,
        )

    invoker = LoadBalancedInvoker(
        registry,
        connect_timeout=settings.downstream_connect_timeout,
        read_timeout=settings.downstream_read_timeout,
        max_connections=settings.max_connections,
        max_keepalive_connections=settings.max_keepalive_connections,
        client_errors_are_failures=settings.client_errors_trip_breaker,
        transport=transport,
    )
    commands = CommandRegistry(
        default_config=settings.default_command.to_config(),
        overrides=settings.command_overrides(),
        clock=clock,
    )
    routes = RouteTable(
        settings.routes,
        discovery_routes=settings.discovery_routes,
        strip_prefix=settings.strip_prefix,
    )

    filters: list[GatewayFilter] = [TrackingFilter()]
    if authenticator is not None:
        filters.append(AuthenticationFilter(authenticator))
    filters.append(RouteFilter(routes, registry, invoker, commands))
    filters.append(ResponseFilter())

    logger.info(
        "gateway_composed",
        registry=settings.registry_type,
        routes=len(routes.routes),
        authentication=authenticator is not None,
    )
    return GatewayComponents(
        settings=settings,
        registry=registry,
        invoker=invoker,
        commands=commands,
        routes=routes,
        pipeline=GatewayPipeline(filters),
        authenticator=authenticator,
    )


def get_components(request: Request) -> GatewayComponents:
    """Get the gateway components built for this application."""
    return request.app.state.gateway


def get_pipeline(
    components: Annotated[GatewayComponents, Depends(get_components)],
) -> GatewayPipeline:
    return components.pipeline


def get_commands(
    components: Annotated[GatewayComponents, Depends(get_components)],
) -> CommandRegistry:
    return components.commands


# Type aliases for cleaner function signatures
Pipeline = Annotated[GatewayPipeline, Depends(get_pipeline)]
Commands = Annotated[CommandRegistry, Depends(get_commands)]
