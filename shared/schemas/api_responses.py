"""Standard API response envelopes."""

from typing import Any, Optional

from pydantic import BaseModel

from shared.errors import GatewayError


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error_code: str
    error_message: str
    details: Optional[dict[str, Any]] = None
    correlation_id: Optional[str] = None

    @classmethod
    def from_error(cls, error: GatewayError, correlation_id: str | None = None) -> "ErrorResponse":
        """Build the envelope for a gateway error."""
        return cls(
            error_code=error.error_code,
            error_message=error.message,
            details=error.details or None,
            correlation_id=correlation_id,
        )
