"""Error taxonomy shared by the gateway and downstream clients."""

from typing import Any


class InvalidArgument(ValueError):
    """Raised when a required argument is missing or malformed."""


class GatewayError(Exception):
    """Base class for failures that map onto a gateway response."""

    status_code: int = 500
    error_code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class RoutingFailure(GatewayError):
    """No healthy instance is registered for a logical service name."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, service_name: str, message: str | None = None):
        self.service_name = service_name
        super().__init__(
            message or f"No healthy instances available for {service_name}",
            details={"service": service_name},
        )


class DownstreamFailure(GatewayError):
    """A call to a resolved instance failed.

    ``reason`` is one of ``timeout``, ``connect`` or ``status``. For
    ``status`` failures the downstream status code is kept in
    ``downstream_status``.
    """

    status_code = 502
    error_code = "DOWNSTREAM_FAILURE"

    def __init__(
        self,
        service_name: str,
        message: str,
        *,
        reason: str = "status",
        downstream_status: int | None = None,
    ):
        self.service_name = service_name
        self.reason = reason
        self.downstream_status = downstream_status
        details: dict[str, Any] = {"service": service_name, "reason": reason}
        if downstream_status is not None:
            details["downstream_status"] = downstream_status
        super().__init__(message, details=details)


class ExecutionTimeout(DownstreamFailure):
    """A protected operation did not finish within its deadline."""

    status_code = 504
    error_code = "EXECUTION_TIMEOUT"

    def __init__(self, command: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            command,
            f"Command {command} timed out after {timeout_ms}ms",
            reason="timeout",
        )


class CircuitOpenRejection(GatewayError):
    """The circuit for a command is open and the call was not attempted."""

    status_code = 503
    error_code = "CIRCUIT_OPEN"

    def __init__(self, command: str, retry_after: int = 0):
        self.command = command
        self.retry_after = retry_after
        super().__init__(
            f"Circuit {command} is open",
            details={"command": command, "retry_after": retry_after},
        )


class BulkheadRejection(GatewayError):
    """The bulkhead for a command is saturated."""

    status_code = 503
    error_code = "BULKHEAD_REJECTED"

    def __init__(self, pool: str, capacity: int):
        self.pool = pool
        self.capacity = capacity
        super().__init__(
            f"Bulkhead {pool} is full ({capacity} calls in flight)",
            details={"pool": pool, "capacity": capacity},
        )


class FilterAbort(GatewayError):
    """A pre-filter rejected the request."""

    status_code = 400
    error_code = "BAD_REQUEST"
