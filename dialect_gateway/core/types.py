from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

CanonicalRole = Literal["user", "assistant"]


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    OTHER = "other"

    @classmethod
    def from_backend(cls, value: Any) -> FinishReason | None:
        """Map a backend ``finish_reason`` onto the canonical enum.

        Empty or missing values mean "not finished yet" and return None.
        """
        if not value:
            return None
        if value == "stop":
            return cls.STOP
        if value == "length":
            return cls.LENGTH
        return cls.OTHER


@dataclass(frozen=True, slots=True)
class CanonicalMessage:
    role: CanonicalRole
    content: str

    def to_backend(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class CanonicalRequest:
    """Normalized request handed to the internal completion service.

    ``messages`` already carries ``system_text`` prepended to the first user
    message; ``system_text`` is kept for logging and token estimation.
    """

    messages: list[CanonicalMessage]
    system_text: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_backend_messages(self) -> list[dict[str, str]]:
        return [message.to_backend() for message in self.messages]


@dataclass(frozen=True, slots=True)
class CanonicalUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class CanonicalDelta:
    text_fragment: str | None = None
    finish_reason: FinishReason | None = None
    usage: CanonicalUsage | None = None


@dataclass(frozen=True, slots=True)
class CanonicalResult:
    id: str
    text: str
    finish_reason: FinishReason
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
