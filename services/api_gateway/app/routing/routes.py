"""Mapping of inbound paths to logical service names."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RouteMatch:
    """A resolved route for one inbound path."""

    service_id: str
    prefix: str
    downstream_path: str


class RouteTable:
    """Explicit prefix routes, optionally backed by discovery routes.

    Explicit routes are matched by longest prefix on segment boundaries.
    With ``discovery_routes`` enabled, ``/<service>/rest`` routes to
    ``<service>`` when no explicit route matches.
    """

    def __init__(
        self,
        routes: dict[str, str] | None = None,
        *,
        discovery_routes: bool = False,
        strip_prefix: bool = True,
    ):
        self.routes = {
            "/" + prefix.strip("/"): service.lower()
            for prefix, service in (routes or {}).items()
        }
        self.discovery_routes = discovery_routes
        self.strip_prefix = strip_prefix
        self._prefixes = sorted(self.routes, key=len, reverse=True)

    def match(self, path: str) -> RouteMatch | None:
        path = "/" + path.lstrip("/")
        for prefix in self._prefixes:
            if path == prefix or path.startswith(prefix + "/"):
                return self._build(self.routes[prefix], prefix, path)

        if self.discovery_routes:
            segment = path.strip("/").split("/", 1)[0]
            if segment:
                return self._build(segment.lower(), "/" + segment, path)
        return None

    def _build(self, service_id: str, prefix: str, path: str) -> RouteMatch:
        downstream = path[len(prefix):] if self.strip_prefix else path
        return RouteMatch(
            service_id=service_id,
            prefix=prefix,
            downstream_path=downstream or "/",
        )

    def service_ids(self) -> list[str]:
        return sorted(set(self.routes.values()))
