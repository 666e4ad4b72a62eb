"""Core types of the gateway filter pipeline."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

import httpx

from shared.utils.context import CorrelationContext


class FilterType(str, Enum):
    """Pipeline stages, executed in this order."""

    PRE = "pre"
    ROUTE = "route"
    POST = "post"


@dataclass
class GatewayRequest:
    """Inbound request, independent of the web framework."""

    method: str
    path: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    query_string: str = ""
    body: bytes = b""
    client_host: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)


@dataclass
class GatewayResponse:
    """Response produced by the pipeline."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)


@dataclass
class Principal:
    """Authenticated caller as reported by the authentication service."""

    name: str
    roles: frozenset[str] = frozenset()


@dataclass
class RequestContext:
    """State shared by all filters for the lifetime of one request."""

    request: GatewayRequest
    correlation: CorrelationContext
    service_id: str = ""
    route_prefix: str = ""
    downstream_path: str = ""
    principal: Principal | None = None
    response: GatewayResponse | None = None


class GatewayFilter(ABC):
    """A unit of pipeline work.

    Filters of one type run in ascending ``order``. A filter stops the chain
    by raising ``FilterAbort``; it produces the response by assigning
    ``ctx.response``.
    """

    filter_type: FilterType = FilterType.PRE
    order: int = 0

    def should_filter(self, ctx: RequestContext) -> bool:
        return True

    @abstractmethod
    async def run(self, ctx: RequestContext) -> None:
        """Apply the filter to the request context."""

    @property
    def name(self) -> str:
        return type(self).__name__
