from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from .config import GatewaySettings, get_settings
from .errors import GatewayError
from .types import CanonicalRequest, CanonicalResult, FinishReason

logger = logging.getLogger(__name__)


async def create_completion(
    request: CanonicalRequest,
    model: str,
    *,
    settings: GatewaySettings | None = None,
    client: httpx.AsyncClient | None = None,
) -> CanonicalResult:
    settings = settings or get_settings()
    owns_client = client is None
    client = client or _new_client(settings)

    logger.info(
        "Dispatching completion model=%s messages=%d stream=false",
        model,
        len(request.messages),
    )

    try:
        response = await client.post(
            _completions_url(settings),
            json=_completion_body(request, model, stream=False),
            headers=_headers(settings),
        )
    except httpx.HTTPError as exc:
        raise _unreachable(exc) from exc
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise GatewayError(
            status_code=response.status_code,
            message=f"Completion service returned {response.status_code}: {response.text}",
            code="backend_error",
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise GatewayError(
            status_code=502,
            message="Completion service returned a non-JSON body.",
            code="backend_malformed_response",
        ) from exc

    return parse_completion_result(payload)


async def stream_completion_chunks(
    request: CanonicalRequest,
    model: str,
    *,
    settings: GatewaySettings | None = None,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[str]:
    """Yield raw text chunks from a streamed completion, exactly as received.

    Chunk boundaries are whatever the transport delivers; callers must not
    assume they align with SSE lines.
    """
    settings = settings or get_settings()
    owns_client = client is None
    client = client or _new_client(settings)

    logger.info(
        "Dispatching completion model=%s messages=%d stream=true",
        model,
        len(request.messages),
    )

    try:
        async with client.stream(
            "POST",
            _completions_url(settings),
            json=_completion_body(request, model, stream=True),
            headers=_headers(settings),
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise GatewayError(
                    status_code=response.status_code,
                    message=f"Completion service returned {response.status_code}: {body}",
                    code="backend_error",
                )

            async for chunk in response.aiter_text():
                if chunk:
                    yield chunk
    except httpx.HTTPError as exc:
        raise _unreachable(exc) from exc
    finally:
        if owns_client:
            await client.aclose()


def parse_completion_result(payload: Any) -> CanonicalResult:
    try:
        choice = payload["choices"][0]
        message = choice.get("message") or {}
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise GatewayError(
            status_code=502,
            message="Completion service response has no choices.",
            code="backend_malformed_response",
        ) from exc

    content = message.get("content")
    usage = payload.get("usage") or {}

    return CanonicalResult(
        id=str(payload.get("id") or ""),
        text=content if isinstance(content, str) else "",
        finish_reason=FinishReason.from_backend(choice.get("finish_reason"))
        or FinishReason.STOP,
        prompt_tokens=_as_int(usage.get("prompt_tokens")),
        completion_tokens=_as_int(usage.get("completion_tokens")),
        total_tokens=_as_int(usage.get("total_tokens")),
    )


def _new_client(settings: GatewaySettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.request_timeout)


def _completions_url(settings: GatewaySettings) -> str:
    return f"{settings.backend_base_url}/chat/completions"


def _completion_body(
    request: CanonicalRequest,
    model: str,
    *,
    stream: bool,
) -> dict[str, Any]:
    return {
        "model": model,
        "messages": request.to_backend_messages(),
        "stream": stream,
    }


def _headers(settings: GatewaySettings) -> dict[str, str]:
    headers = {"Accept": "application/json, text/event-stream"}
    if settings.backend_api_key:
        headers["Authorization"] = f"Bearer {settings.backend_api_key}"
    return headers


def _unreachable(exc: httpx.HTTPError) -> GatewayError:
    return GatewayError(
        status_code=502,
        message=f"Completion service is unreachable: {exc}",
        code="backend_unavailable",
    )


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    return 0
