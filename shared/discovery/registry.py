"""Service registry clients resolving logical service names to instances."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol
from urllib.parse import urlsplit

import httpx

from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceInstance:
    """One registered network endpoint of a logical service."""

    service_name: str
    host: str
    port: int
    is_healthy: bool = True
    secure: bool = False
    instance_id: str = ""
    metadata: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def uri(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @classmethod
    def parse(cls, service_name: str, address: str) -> "ServiceInstance":
        """Build an instance from ``host:port`` or a full URL."""
        if "://" not in address:
            address = f"http://{address}"
        parts = urlsplit(address)
        if not parts.hostname:
            raise ValueError(f"Invalid instance address for {service_name}: {address}")
        secure = parts.scheme == "https"
        port = parts.port or (443 if secure else 80)
        return cls(
            service_name=service_name,
            host=parts.hostname,
            port=port,
            secure=secure,
            instance_id=f"{parts.hostname}:{service_name}:{port}",
        )


class ServiceRegistry(Protocol):
    """Anything that can list the live instances of a logical service."""

    async def resolve(self, service_name: str) -> list[ServiceInstance]:
        """Return healthy instances; an empty list when none are registered."""
        ...


class StaticServiceRegistry:
    """Registry backed by a fixed name -> addresses mapping."""

    def __init__(self, instances: dict[str, list[str]] | None = None):
        self._instances: dict[str, list[ServiceInstance]] = {}
        for name, addresses in (instances or {}).items():
            self._instances[name.lower()] = [
                ServiceInstance.parse(name.lower(), address) for address in addresses
            ]

    def add(self, instance: ServiceInstance) -> None:
        self._instances.setdefault(instance.service_name.lower(), []).append(instance)

    async def resolve(self, service_name: str) -> list[ServiceInstance]:
        instances = self._instances.get(service_name.lower(), [])
        return [instance for instance in instances if instance.is_healthy]

    def services(self) -> list[str]:
        return sorted(self._instances)


@dataclass
class _CacheEntry:
    expires_at: float
    instances: list[ServiceInstance]


class EurekaServiceRegistry:
    """Registry client querying a Eureka server's REST API.

    Lookups are cached per service for ``refresh_seconds``. Concurrent
    lookups of one service share a single refresh. When the registry cannot
    be reached the last known instances (or none) are served for
    ``failure_backoff_seconds`` before the next attempt. At most
    ``max_cached_services`` names are cached; the least recently refreshed
    are evicted first.
    """

    def __init__(
        self,
        base_url: str,
        refresh_seconds: float = 30.0,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        failure_backoff_seconds: float = 5.0,
        max_cached_services: int = 1024,
    ):
        if max_cached_services <= 0:
            raise ValueError("max_cached_services must be positive")
        self.base_url = base_url.rstrip("/")
        self.refresh_seconds = refresh_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self.max_cached_services = max_cached_services
        self._timeout = httpx.Timeout(timeout)
        self._client = client
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._refreshing: dict[str, asyncio.Future] = {}

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @property
    def cached_services(self) -> list[str]:
        return list(self._cache)

    @property
    def pending_refreshes(self) -> int:
        return len(self._refreshing)

    async def resolve(self, service_name: str) -> list[ServiceInstance]:
        name = service_name.lower()
        entry = self._cache.get(name)
        if entry is None or self._clock() >= entry.expires_at:
            refresh = self._refreshing.get(name)
            if refresh is None:
                refresh = asyncio.ensure_future(self._refresh(name, entry))
                self._refreshing[name] = refresh
                refresh.add_done_callback(lambda _: self._refreshing.pop(name, None))
            # A cancelled caller must not cancel the refresh other callers share
            instances = await asyncio.shield(refresh)
        else:
            instances = entry.instances
        return [i for i in instances if i.is_healthy]

    async def _refresh(self, name: str, previous: _CacheEntry | None) -> list[ServiceInstance]:
        try:
            instances = await self._fetch(name)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            stale = previous.instances if previous else []
            logger.warning(
                "registry_refresh_failed",
                service=name,
                error=str(e),
                stale_instances=len(stale),
                retry_in=self.failure_backoff_seconds,
            )
            self._store(name, stale, self.failure_backoff_seconds)
            return stale

        self._store(name, instances, self.refresh_seconds)
        logger.debug("registry_refreshed", service=name, instances=len(instances))
        return instances

    def _store(self, name: str, instances: list[ServiceInstance], ttl: float) -> None:
        now = self._clock()
        # Re-insert so iteration order follows refresh time
        self._cache.pop(name, None)
        self._cache[name] = _CacheEntry(expires_at=now + ttl, instances=instances)
        if len(self._cache) <= self.max_cached_services:
            return

        for key in [k for k, e in self._cache.items() if e.expires_at <= now]:
            del self._cache[key]
        while len(self._cache) > self.max_cached_services:
            evicted = next(iter(self._cache))
            del self._cache[evicted]
            logger.debug("registry_cache_evicted", service=evicted)

    async def _fetch(self, service_name: str) -> list[ServiceInstance]:
        client = await self.get_client()
        response = await client.get(
            f"{self.base_url}/apps/{service_name.upper()}",
            headers={"Accept": "application/json"},
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return self._parse_application(service_name, response.json())

    def _parse_application(self, service_name: str, payload: dict[str, Any]) -> list[ServiceInstance]:
        raw = payload.get("application", {}).get("instance", [])
        # Eureka collapses single-element lists into an object
        if isinstance(raw, dict):
            raw = [raw]
        return [self._parse_instance(service_name, item) for item in raw]

    def _parse_instance(self, service_name: str, item: dict[str, Any]) -> ServiceInstance:
        secure_port = item.get("securePort") or {}
        secure = str(secure_port.get("@enabled", "false")).lower() == "true"
        port_info = secure_port if secure else (item.get("port") or {})
        return ServiceInstance(
            service_name=service_name,
            host=item.get("ipAddr") or item["hostName"],
            port=int(port_info.get("$", 443 if secure else 80)),
            is_healthy=item.get("status") == "UP",
            secure=secure,
            instance_id=item.get("instanceId", ""),
            metadata={k: str(v) for k, v in (item.get("metadata") or {}).items()},
        )
