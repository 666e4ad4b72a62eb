"""Client-side load balancing over registry-resolved instances."""

import itertools
import threading
import time
from typing import Any, Iterator, Sequence

import httpx

from shared.discovery.registry import ServiceInstance, ServiceRegistry
from shared.errors import DownstreamFailure, RoutingFailure
from shared.utils.context import propagate_context
from shared.utils.logging import get_logger
from shared.utils.metrics import DOWNSTREAM_LATENCY

logger = get_logger(__name__)


class LoadBalancedInvoker:
    """Picks one instance per call (round-robin) and performs the HTTP call.

    Every outbound request carries the active correlation context through
    the client's request hook.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        client: httpx.AsyncClient | None = None,
        *,
        connect_timeout: float = 2.0,
        read_timeout: float = 30.0,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        client_errors_are_failures: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize invoker.

        Args:
            registry: Registry used by ``invoke`` to resolve instances
            client: Preconfigured client; one is created when omitted
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds
            max_connections: Connection pool size
            max_keepalive_connections: Idle connections kept open
            client_errors_are_failures: Raise DownstreamFailure for 4xx too
            transport: Transport for the created client (tests)
        """
        self.registry = registry
        self.client_errors_are_failures = client_errors_are_failures
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            limits=httpx.Limits(
                max_keepalive_connections=max_keepalive_connections,
                max_connections=max_connections,
            ),
            transport=transport,
        )
        hooks = self._client.event_hooks
        if propagate_context not in hooks["request"]:
            self._client.event_hooks = {
                "request": [*hooks["request"], propagate_context],
                "response": list(hooks["response"]),
            }
        self._counters: dict[str, Iterator[int]] = {}
        self._lock = threading.Lock()

    async def close(self) -> None:
        await self._client.aclose()

    def choose(self, service_name: str, instances: Sequence[ServiceInstance]) -> ServiceInstance:
        """Select the next instance for ``service_name`` in round-robin order."""
        if not instances:
            raise RoutingFailure(service_name)
        with self._lock:
            counter = self._counters.setdefault(service_name, itertools.count())
            position = next(counter)
        return instances[position % len(instances)]

    async def invoke(
        self,
        service_name: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Resolve ``service_name`` and call one of its instances.

        Raises:
            RoutingFailure: If no healthy instance is registered
            DownstreamFailure: On timeout, connection error or failing status
        """
        instances = await self.registry.resolve(service_name)
        if not instances:
            raise RoutingFailure(service_name)
        return await self.send(service_name, instances, method, path, **kwargs)

    async def send(
        self,
        service_name: str,
        instances: Sequence[ServiceInstance],
        method: str,
        path: str,
        *,
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
        params: Any = None,
        content: bytes | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Call one of the already-resolved ``instances``.

        Raises:
            DownstreamFailure: On timeout, connection error or failing status
        """
        instance = self.choose(service_name, instances)
        url = f"{instance.uri}/{path.lstrip('/')}"
        start_time = time.perf_counter()

        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                content=content,
                json=json,
            )
        except httpx.TimeoutException as e:
            logger.error("downstream_timeout", service=service_name, url=url)
            raise DownstreamFailure(
                service_name, f"Request to {service_name} timed out", reason="timeout"
            ) from e
        except httpx.TransportError as e:
            logger.error("downstream_connect_error", service=service_name, url=url, error=str(e))
            raise DownstreamFailure(
                service_name, f"Unable to connect to {service_name}", reason="connect"
            ) from e

        DOWNSTREAM_LATENCY.labels(
            service=service_name,
            status_code=response.status_code,
        ).observe(time.perf_counter() - start_time)

        logger.info(
            "downstream_request",
            service=service_name,
            instance=instance.instance_id or instance.uri,
            method=method,
            status_code=response.status_code,
        )

        if self._is_failure(response.status_code):
            raise DownstreamFailure(
                service_name,
                f"{service_name} responded with {response.status_code}",
                reason="status",
                downstream_status=response.status_code,
            )
        return response

    def _is_failure(self, status_code: int) -> bool:
        if 200 <= status_code < 300:
            return False
        if 400 <= status_code < 500 and not self.client_errors_are_failures:
            return False
        return True
