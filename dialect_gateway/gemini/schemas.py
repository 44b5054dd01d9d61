from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GeminiPart(BaseModel):
    text: str | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("text", mode="before")
    @classmethod
    def _drop_non_string_text(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class GeminiContent(BaseModel):
    role: str | None = None
    parts: list[GeminiPart] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("parts", mode="before")
    @classmethod
    def _coerce_parts(cls, value: Any) -> list[Any]:
        # Unusable parts degrade to an empty turn instead of rejecting the request.
        if not isinstance(value, list):
            return []
        return [part for part in value if isinstance(part, dict)]


class GenerateContentRequest(BaseModel):
    model: str | None = None
    contents: list[GeminiContent] = Field(default_factory=list)
    system_instruction: str | GeminiContent | None = Field(
        default=None, alias="systemInstruction"
    )
    generation_config: dict[str, Any] | None = Field(
        default=None, alias="generationConfig"
    )
    safety_settings: list[dict[str, Any]] | None = Field(
        default=None, alias="safetySettings"
    )
    stream: bool = False

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("contents", mode="before")
    @classmethod
    def _blank_malformed_turns(cls, value: Any) -> Any:
        # A turn that is not an object becomes an empty user turn.
        if isinstance(value, list):
            return [turn if isinstance(turn, dict) else {} for turn in value]
        return value

    @field_validator("system_instruction", mode="before")
    @classmethod
    def _coerce_system_instruction(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            return value
        return None


class CountTokensRequest(BaseModel):
    contents: list[GeminiContent] = Field(default_factory=list)
    system_instruction: str | GeminiContent | None = Field(
        default=None, alias="systemInstruction"
    )

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("contents", mode="before")
    @classmethod
    def _blank_malformed_turns(cls, value: Any) -> Any:
        # A turn that is not an object becomes an empty user turn.
        if isinstance(value, list):
            return [turn if isinstance(turn, dict) else {} for turn in value]
        return value

    @field_validator("system_instruction", mode="before")
    @classmethod
    def _coerce_system_instruction(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            return value
        return None
