"""Protected commands: circuit breaker, bulkhead, timeout and fallback in one wrapper."""

import asyncio
import functools
import inspect
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from shared.errors import (
    BulkheadRejection,
    CircuitOpenRejection,
    ExecutionTimeout,
)
from shared.resilience.bulkhead import Bulkhead
from shared.resilience.circuit_breaker import CircuitBreaker, CommandConfig
from shared.utils.logging import get_logger
from shared.utils.metrics import COMMAND_EVENTS

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CommandResult(Generic[T]):
    """Outcome of one command execution."""

    value: T
    is_fallback: bool = False
    failure: BaseException | None = None

    @property
    def failure_reason(self) -> str | None:
        if self.failure is None:
            return None
        if isinstance(self.failure, CircuitOpenRejection):
            return "short_circuited"
        if isinstance(self.failure, BulkheadRejection):
            return "rejected"
        if isinstance(self.failure, ExecutionTimeout):
            return "timeout"
        return "failure"


def _discard_result(task: asyncio.Task) -> None:
    # Abandoned after a timeout; retrieve the outcome so it is never reported
    if not task.cancelled():
        task.exception()


class Command(Generic[T]):
    """A protected operation identified by a command key.

    Calls run on the command's bulkhead under a hard deadline. Failures,
    timeouts, rejections and open-circuit short circuits all resolve to the
    fallback. Each call records at most one outcome in the breaker.
    """

    def __init__(
        self,
        key: str,
        func: Callable[..., Any],
        fallback: Callable[..., Any] | None = None,
        config: CommandConfig | None = None,
        *,
        breaker: CircuitBreaker | None = None,
        bulkhead: Bulkhead | None = None,
        ignore_exceptions: tuple[type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.key = key
        self.func = func
        self.fallback = fallback
        self.config = config or CommandConfig()
        self.breaker = breaker or CircuitBreaker(key, self.config, clock=clock)
        self.bulkhead = bulkhead or Bulkhead(
            self.config.thread_pool_key or key,
            self.config.core_size,
            self.config.max_queue_size,
        )
        self.ignore_exceptions = ignore_exceptions
        functools.update_wrapper(self, func)

    async def __call__(self, *args: Any, **kwargs: Any) -> T:
        result = await self.execute(*args, **kwargs)
        return result.value

    async def execute(self, *args: Any, **kwargs: Any) -> CommandResult[T]:
        """Run the protected operation, falling back on any classified failure."""
        if not self.breaker.allow_request():
            self._event("short_circuited")
            return await self._fallback(
                CircuitOpenRejection(self.key, self.breaker.retry_after()), args, kwargs
            )

        try:
            task = self.bulkhead.submit(self.func, *args, **kwargs)
        except BulkheadRejection as exc:
            self.breaker.mark_failure()
            self._event("rejected")
            return await self._fallback(exc, args, kwargs)

        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout_ms / 1000)
        except asyncio.CancelledError:
            task.add_done_callback(_discard_result)
            self.breaker.release_trial()
            raise

        if not done:
            task.add_done_callback(_discard_result)
            self.breaker.mark_failure()
            self._event("timeout")
            return await self._fallback(
                ExecutionTimeout(self.key, self.config.timeout_ms), args, kwargs
            )

        exc = task.exception() if not task.cancelled() else asyncio.CancelledError()
        if exc is None:
            self.breaker.mark_success()
            self._event("success")
            return CommandResult(value=task.result())

        if isinstance(exc, self.ignore_exceptions):
            self.breaker.release_trial()
            raise exc

        self.breaker.mark_failure()
        self._event("failure")
        return await self._fallback(exc, args, kwargs)

    async def _fallback(
        self, failure: BaseException, args: tuple, kwargs: dict
    ) -> CommandResult[T]:
        logger.warning(
            "command_fallback",
            command=self.key,
            reason=type(failure).__name__,
            error=str(failure),
        )
        if self.fallback is None:
            raise failure

        try:
            value = self.fallback(*args, **kwargs)
            if inspect.isawaitable(value):
                value = await value
        except Exception:
            logger.exception("fallback_failed", command=self.key)
            raise

        self._event("fallback")
        return CommandResult(value=value, is_fallback=True, failure=failure)

    def _event(self, event: str) -> None:
        COMMAND_EVENTS.labels(command=self.key, event=event).inc()

    def get_state(self) -> dict:
        state = self.breaker.get_state()
        state["bulkhead"] = self.bulkhead.get_state()
        return state


class CommandRegistry:
    """Commands composed once at startup, one per command key.

    Commands that name the same ``thread_pool_key`` share one bulkhead.
    """

    def __init__(
        self,
        default_config: CommandConfig | None = None,
        overrides: dict[str, CommandConfig] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_config = default_config or CommandConfig()
        self.overrides = dict(overrides or {})
        self._clock = clock
        self._commands: dict[str, Command] = {}
        self._bulkheads: dict[str, Bulkhead] = {}

    def config_for(self, key: str) -> CommandConfig:
        return self.overrides.get(key, self.default_config)

    def register(
        self,
        key: str,
        func: Callable[..., Any],
        fallback: Callable[..., Any] | None = None,
        config: CommandConfig | None = None,
        ignore_exceptions: tuple[type[BaseException], ...] = (),
    ) -> Command:
        """Create the command for ``key``.

        Raises:
            ValueError: If a command is already registered under ``key``
        """
        if key in self._commands:
            raise ValueError(f"Command {key} is already registered")

        config = config or self.config_for(key)
        pool_key = config.thread_pool_key or key
        bulkhead = self._bulkheads.get(pool_key)
        if bulkhead is None:
            bulkhead = Bulkhead(pool_key, config.core_size, config.max_queue_size)
            self._bulkheads[pool_key] = bulkhead

        command = Command(
            key,
            func,
            fallback,
            config,
            bulkhead=bulkhead,
            breaker=CircuitBreaker(key, config, clock=self._clock),
            ignore_exceptions=ignore_exceptions,
        )
        self._commands[key] = command
        logger.info(
            "command_registered",
            command=key,
            pool=pool_key,
            timeout_ms=config.timeout_ms,
        )
        return command

    def get(self, key: str) -> Command | None:
        return self._commands.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._commands

    def command(
        self,
        key: str,
        *,
        fallback: Callable[..., Any] | None = None,
        config: CommandConfig | None = None,
        ignore_exceptions: tuple[type[BaseException], ...] = (),
    ) -> Callable[[Callable[..., Any]], Command]:
        """Decorator registering the decorated function as a command."""

        def decorator(func: Callable[..., Any]) -> Command:
            return self.register(key, func, fallback, config, ignore_exceptions)

        return decorator

    def get_states(self) -> dict[str, dict]:
        """Get current state of all commands."""
        return {key: cmd.get_state() for key, cmd in self._commands.items()}

    def reset(self, key: str) -> bool:
        """Reset the circuit of one command.

        Returns:
            True if the command exists
        """
        command = self._commands.get(key)
        if command is None:
            return False
        command.breaker.reset()
        return True

    def shutdown(self) -> None:
        for bulkhead in self._bulkheads.values():
            bulkhead.shutdown()
