"""Resilience primitives: rolling window, bulkhead, circuit breaker, commands."""

from shared.resilience.bulkhead import Bulkhead
from shared.resilience.circuit_breaker import CircuitBreaker, CircuitState, CommandConfig
from shared.resilience.command import Command, CommandRegistry, CommandResult
from shared.resilience.rolling_window import HealthCounts, RollingWindow

__all__ = [
    "Bulkhead",
    "CircuitBreaker",
    "CircuitState",
    "Command",
    "CommandConfig",
    "CommandRegistry",
    "CommandResult",
    "HealthCounts",
    "RollingWindow",
]
