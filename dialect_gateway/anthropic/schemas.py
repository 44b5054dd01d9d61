from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class MessageContentBlock(BaseModel):
    type: str = ""
    text: str | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("text", mode="before")
    @classmethod
    def _drop_non_string_text(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


def _coerce_content(value: Any) -> str | list[Any] | None:
    # Unflattenable content degrades to nothing instead of rejecting the request.
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return [block for block in value if isinstance(block, dict)]
    return None


def _blank_non_object_entries(value: Any) -> Any:
    # Keeps the entry in place so message indexes in warnings stay accurate.
    if isinstance(value, list):
        return [entry if isinstance(entry, dict) else {} for entry in value]
    return value


class MessagesMessage(BaseModel):
    role: str = ""
    content: str | list[MessageContentBlock] | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str | list[Any] | None:
        return _coerce_content(value)


class MessagesRequest(BaseModel):
    model: str
    messages: list[MessagesMessage]
    system: str | list[MessageContentBlock] | None = None
    max_tokens: int | None = None
    stream: bool = False
    metadata: dict[str, Any] | None = None
    stop_sequences: list[str] | None = None
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("messages", mode="before")
    @classmethod
    def _blank_malformed_messages(cls, value: Any) -> Any:
        return _blank_non_object_entries(value)

    @field_validator("system", mode="before")
    @classmethod
    def _coerce_system(cls, value: Any) -> str | list[Any] | None:
        return _coerce_content(value)


class CountTokensRequest(BaseModel):
    model: str
    messages: list[MessagesMessage]
    system: str | list[MessageContentBlock] | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("messages", mode="before")
    @classmethod
    def _blank_malformed_messages(cls, value: Any) -> Any:
        return _blank_non_object_entries(value)

    @field_validator("system", mode="before")
    @classmethod
    def _coerce_system(cls, value: Any) -> str | list[Any] | None:
        return _coerce_content(value)
