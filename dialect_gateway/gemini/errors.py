from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dialect_gateway.core.errors import GatewayError

_STATUS_BY_CODE = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    429: "RESOURCE_EXHAUSTED",
    503: "UNAVAILABLE",
}


@dataclass
class GeminiCompatError(Exception):
    """generateContent-style error with HTTP metadata."""

    status_code: int
    message: str
    status: str = "INVALID_ARGUMENT"

    def to_error(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.status_code,
                "message": self.message,
                "status": self.status,
            }
        }


def status_for_code(status_code: int) -> str:
    if status_code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[status_code]
    if status_code >= 500:
        return "INTERNAL"
    return "INVALID_ARGUMENT"


def map_gemini_error(exc: Exception) -> GeminiCompatError:
    if isinstance(exc, GeminiCompatError):
        return exc

    if isinstance(exc, GatewayError):
        return GeminiCompatError(
            status_code=exc.status_code,
            message=exc.message,
            status=status_for_code(exc.status_code),
        )

    return GeminiCompatError(500, f"Unexpected server error: {exc}", "INTERNAL")
