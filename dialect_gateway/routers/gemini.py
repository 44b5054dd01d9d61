from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from dialect_gateway.gemini.adapter import (
    count_tokens,
    create_generate_content_response,
    create_generate_content_stream,
    warning_headers,
)
from dialect_gateway.gemini.schemas import CountTokensRequest, GenerateContentRequest

from .streaming import event_stream_response

router = APIRouter(prefix="/v1beta", tags=["gemini"])


@router.post("/models/{model}:generateContent")
async def generate_content(model: str, payload: GenerateContentRequest):
    if payload.stream:
        return await _stream(model, payload)

    response_payload, warnings = await create_generate_content_response(payload, model)
    return JSONResponse(content=response_payload, headers=warning_headers(warnings))


@router.post("/models/{model}:streamGenerateContent")
async def stream_generate_content(model: str, payload: GenerateContentRequest):
    # Always SSE framed; the alt=sse query parameter is accepted and ignored.
    return await _stream(model, payload)


@router.post("/models/{model}:countTokens")
async def count_content_tokens(model: str, payload: CountTokensRequest):
    return count_tokens(payload)


async def _stream(model: str, payload: GenerateContentRequest) -> StreamingResponse:
    frames, warnings = await create_generate_content_stream(payload, model)
    return event_stream_response(frames, warning_headers(warnings))
