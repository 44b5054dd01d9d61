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

from .errors import GeminiCompatError, map_gemini_error
from .schemas import CountTokensRequest, GeminiContent, GenerateContentRequest
from .transcoder import GenerateContentStreamTranscoder, candidate_payload

logger = logging.getLogger(__name__)

WARNINGS_HEADER = "X-Gemini-Compat-Warnings"


def warning_headers(warnings: list[str]) -> dict[str, str]:
    return compat_warning_headers(WARNINGS_HEADER, warnings)


def normalize_generate_content_request(
    contents: list[GeminiContent],
    system_instruction: str | GeminiContent | None = None,
) -> CanonicalRequest:
    """Map generateContent turns onto canonical messages.

    ``model`` turns become assistant messages and every other role becomes a
    user message. The system instruction is prepended to the first user turn.
    """
    warnings: list[str] = []

    if isinstance(system_instruction, GeminiContent):
        system_text = _parts_text(system_instruction) or None
    else:
        system_text = system_instruction or None

    canonical: list[CanonicalMessage] = []
    system_prepended = False

    for content in contents:
        role = "assistant" if content.role == "model" else "user"
        text = _parts_text(content)

        if role == "user" and system_text and not system_prepended:
            text = f"{system_text}\n\n{text}"
            system_prepended = True

        canonical.append(CanonicalMessage(role=role, content=text))

    if system_text and not system_prepended:
        logger.warning("Dropping system instruction: request has no user turn")
        warnings.append("Dropped systemInstruction because the request has no user turn.")

    return CanonicalRequest(messages=canonical, system_text=system_text, warnings=warnings)


def map_finish_reason(finish_reason: FinishReason) -> str:
    if finish_reason is FinishReason.STOP:
        return "STOP"
    return "MAX_TOKENS"

def synthesize_generate_content_response(result: CanonicalResult) -> dict[str, Any]:
    return {
        "candidates": [
            candidate_payload(result.text, map_finish_reason(result.finish_reason))
        ],
        "usageMetadata": {
            "promptTokenCount": result.prompt_tokens,
            "candidatesTokenCount": result.completion_tokens,
            "totalTokenCount": result.total_tokens,
        },
    }


async def create_generate_content_response(
    request: GenerateContentRequest,
    model: str,
) -> tuple[dict[str, Any], list[str]]:
    canonical, backend_model, warnings = _prepare(request, model)

    try:
        result = await create_completion(canonical, backend_model)
    except Exception as exc:
        raise map_gemini_error(exc) from exc

    return synthesize_generate_content_response(result), warnings


async def create_generate_content_stream(
    request: GenerateContentRequest,
    model: str,
) -> tuple[AsyncIterator[bytes], list[str]]:
    canonical, backend_model, warnings = _prepare(request, model)
    transcoder = GenerateContentStreamTranscoder(
        f"gen_{uuid.uuid4().hex}",
        prompt_tokens=estimate_request_tokens(canonical),
    )
    try:
        chunks = await prime_chunks(stream_completion_chunks(canonical, backend_model))
    except Exception as exc:
        raise map_gemini_error(exc) from exc

    return transcode_stream(transcoder, chunks), warnings


def count_tokens(request: CountTokensRequest) -> dict[str, int]:
    canonical = normalize_generate_content_request(
        request.contents, request.system_instruction
    )
    return {"totalTokens": estimate_request_tokens(canonical)}


def model_from_path(model: str) -> str:
    return model.removeprefix("models/")


def _prepare(
    request: GenerateContentRequest,
    model: str,
) -> tuple[CanonicalRequest, str, list[str]]:
    if not request.contents:
        raise GeminiCompatError(
            status_code=400,
            message="contents must contain at least one item.",
            status="INVALID_ARGUMENT",
        )

    backend_model, warnings = get_settings().resolve_model(model_from_path(model))
    canonical = normalize_generate_content_request(
        request.contents, request.system_instruction
    )
    warnings.extend(canonical.warnings)
    return canonical, backend_model, dedupe_preserve_order(warnings)


def _parts_text(content: GeminiContent) -> str:
    return "\n".join(part.text for part in content.parts if part.text)
