from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dialect_gateway.core.errors import GatewayError

_ERROR_TYPE_BY_STATUS = {
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    413: "request_too_large",
    429: "rate_limit_error",
    529: "overloaded_error",
}


@dataclass
class AnthropicCompatError(Exception):
    status_code: int
    message: str
    error_type: str = "invalid_request_error"

    def to_error(self) -> dict[str, Any]:
        return {
            "type": "error",
            "error": {
                "type": self.error_type,
                "message": self.message,
            },
        }


def error_type_for_status(status_code: int) -> str:
    if status_code in _ERROR_TYPE_BY_STATUS:
        return _ERROR_TYPE_BY_STATUS[status_code]
    if status_code >= 500:
        return "api_error"
    return "invalid_request_error"


def map_anthropic_error(exc: Exception) -> AnthropicCompatError:
    if isinstance(exc, AnthropicCompatError):
        return exc

    if isinstance(exc, GatewayError):
        return AnthropicCompatError(
            status_code=exc.status_code,
            message=exc.message,
            error_type=error_type_for_status(exc.status_code),
        )

    return AnthropicCompatError(500, f"Unexpected server error: {exc}", "api_error")
