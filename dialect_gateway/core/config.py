from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "DIALECT_GATEWAY_"
DEFAULT_MODEL_ID = "qwen3-235b-a22b"


class GatewaySettings(BaseModel):
    backend_base_url: str = "http://127.0.0.1:8000/v1"
    backend_api_key: str | None = None
    request_timeout: float = 120.0
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080
    models: list[str] = Field(default_factory=lambda: [DEFAULT_MODEL_ID])
    model_aliases: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("backend_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> GatewaySettings:
        """Build settings from ``DIALECT_GATEWAY_*`` environment variables."""
        env = os.environ if env is None else env
        values: dict[str, object] = {}

        for field_name in ("backend_base_url", "backend_api_key", "log_level", "host"):
            raw = env.get(ENV_PREFIX + field_name.upper())
            if raw:
                values[field_name] = raw

        raw_timeout = env.get(ENV_PREFIX + "REQUEST_TIMEOUT")
        if raw_timeout:
            values["request_timeout"] = raw_timeout

        raw_port = env.get(ENV_PREFIX + "PORT")
        if raw_port:
            values["port"] = raw_port

        raw_models = env.get(ENV_PREFIX + "MODELS")
        if raw_models:
            models = _split_csv(raw_models)
            if models:
                values["models"] = models

        raw_aliases = env.get(ENV_PREFIX + "MODEL_ALIASES")
        if raw_aliases:
            values["model_aliases"] = _parse_aliases(raw_aliases)

        return cls.model_validate(values)

    def resolve_model(self, model: str) -> tuple[str, list[str]]:
        """Return the backend model for a requested id plus any compat warnings."""
        resolved = self.model_aliases.get(model)
        if resolved is None:
            return model, []
        return resolved, [f"Mapped model '{model}' to backend model '{resolved}'."]


@lru_cache
def get_settings() -> GatewaySettings:
    return GatewaySettings.from_env()


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_aliases(raw: str) -> dict[str, str]:
    aliases: dict[str, str] = {}
    for pair in _split_csv(raw):
        alias, sep, target = pair.partition("=")
        if not sep or not alias.strip() or not target.strip():
            logger.warning("Ignoring malformed model alias entry %r", pair)
            continue
        aliases[alias.strip()] = target.strip()
    return aliases
