from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GatewayError(Exception):
    """Failure talking to the internal completion service."""

    status_code: int
    message: str
    code: str | None = None

    def __str__(self) -> str:
        return self.message
