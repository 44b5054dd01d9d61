from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator

from dialect_gateway.core.completion import create_completion, stream_completion_chunks
from dialect_gateway.core.compat_headers import compat_warning_headers, dedupe_preserve_order
from dialect_gateway.core.config import get_settings
from dialect_gateway.core.streaming import prime_chunks, transcode_stream
from dialect_gateway.core.token_estimation import estimate_request_tokens
from dialect_gateway.core.types import (
    CanonicalMessage,
    CanonicalRequest,
    CanonicalResult,
    FinishReason,
)

from .errors import AnthropicCompatError, map_anthropic_error
from .schemas import CountTokensRequest, MessageContentBlock, MessagesMessage, MessagesRequest
from .transcoder import MessagesStreamTranscoder

logger = logging.getLogger(__name__)

_ACCEPTED_ROLES = {"user", "assistant"}
WARNINGS_HEADER = "X-Anthropic-Compat-Warnings"


def warning_headers(warnings: list[str]) -> dict[str, str]:
    return compat_warning_headers(WARNINGS_HEADER, warnings)


def normalize_messages_request(
    messages: list[MessagesMessage],
    system: str | list[MessageContentBlock] | None = None,
) -> CanonicalRequest:
    """Flatten a Messages-style conversation into canonical user/assistant turns.

    The system text is prepended, separated by a blank line, to the first
    user message only. Entries with other roles are skipped.
    """
    warnings: list[str] = []
    system_text = _extract_text(system, field_name="system", warnings=warnings) or None

    canonical: list[CanonicalMessage] = []
    system_prepended = False

    for index, message in enumerate(messages):
        if message.role not in _ACCEPTED_ROLES:
            warnings.append(f"Skipped messages[{index}] with unsupported role '{message.role}'.")
            continue

        text = _extract_text(
            message.content,
            field_name=f"messages[{index}].content",
            warnings=warnings,
        )

        if message.role == "user" and system_text and not system_prepended:
            text = f"{system_text}\n\n{text}"
            system_prepended = True

        canonical.append(CanonicalMessage(role=message.role, content=text))

    if system_text and not system_prepended:
        logger.warning("Dropping system text: request has no user message")
        warnings.append("Dropped system prompt because the request has no user message.")

    return CanonicalRequest(messages=canonical, system_text=system_text, warnings=warnings)


def map_stop_reason(finish_reason: FinishReason) -> str:
    if finish_reason is FinishReason.STOP:
        return "end_turn"
    return "max_tokens"

def synthesize_messages_response(result: CanonicalResult, model: str) -> dict[str, Any]:
    return {
        "id": result.id or _new_message_id(),
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": result.text}],
        "model": model,
        "stop_reason": map_stop_reason(result.finish_reason),
        "stop_sequence": None,
        "usage": {
            "input_tokens": result.prompt_tokens,
            "output_tokens": result.completion_tokens,
        },
    }


async def create_messages_response(
    request: MessagesRequest,
) -> tuple[dict[str, Any], list[str]]:
    canonical, backend_model, warnings = _prepare(request)

    try:
        result = await create_completion(canonical, backend_model)
    except Exception as exc:
        raise map_anthropic_error(exc) from exc

    return synthesize_messages_response(result, request.model), warnings


async def create_messages_stream(
    request: MessagesRequest,
) -> tuple[AsyncIterator[bytes], list[str]]:
    canonical, backend_model, warnings = _prepare(request)
    transcoder = MessagesStreamTranscoder(_new_message_id(), model=request.model)
    try:
        chunks = await prime_chunks(stream_completion_chunks(canonical, backend_model))
    except Exception as exc:
        raise map_anthropic_error(exc) from exc

    return transcode_stream(transcoder, chunks), warnings


def count_tokens(request: CountTokensRequest) -> dict[str, int]:
    canonical = normalize_messages_request(request.messages, request.system)
    return {"input_tokens": estimate_request_tokens(canonical)}


def _prepare(request: MessagesRequest) -> tuple[CanonicalRequest, str, list[str]]:
    if not request.messages:
        raise AnthropicCompatError(
            status_code=400,
            message="messages must contain at least one item.",
            error_type="invalid_request_error",
        )

    backend_model, warnings = get_settings().resolve_model(request.model)
    canonical = normalize_messages_request(request.messages, request.system)
    warnings.extend(canonical.warnings)
    return canonical, backend_model, dedupe_preserve_order(warnings)


def _extract_text(
    content: str | list[MessageContentBlock] | None,
    *,
    field_name: str,
    warnings: list[str],
) -> str:
    if content is None:
        return ""

    if isinstance(content, str):
        return content

    texts: list[str] = []
    ignored_non_text = False

    for block in content:
        if block.type == "text" and block.text is not None:
            texts.append(block.text)
        else:
            ignored_non_text = True

    if ignored_non_text:
        warnings.append(f"Ignored non-text content blocks in {field_name}.")

    return "\n".join(texts)


def _new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"
