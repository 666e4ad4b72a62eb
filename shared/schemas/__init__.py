"""Shared Pydantic schemas for gateway landscape services."""

from shared.schemas.api_responses import ErrorResponse

__all__ = [
    "ErrorResponse",
]
