"""Service discovery and client-side load balancing."""

from shared.discovery.invoker import LoadBalancedInvoker
from shared.discovery.registry import (
    EurekaServiceRegistry,
    ServiceInstance,
    ServiceRegistry,
    StaticServiceRegistry,
)

__all__ = [
    "EurekaServiceRegistry",
    "LoadBalancedInvoker",
    "ServiceInstance",
    "ServiceRegistry",
    "StaticServiceRegistry",
]
