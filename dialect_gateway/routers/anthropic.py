from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from dialect_gateway.anthropic.adapter import (
    count_tokens,
    create_messages_response,
    create_messages_stream,
    warning_headers,
)
from dialect_gateway.anthropic.schemas import CountTokensRequest, MessagesRequest

from .streaming import event_stream_response

router = APIRouter(prefix="/v1", tags=["anthropic"])


@router.post("/messages")
async def messages(payload: MessagesRequest):
    if payload.stream:
        frames, warnings = await create_messages_stream(payload)
        return event_stream_response(frames, warning_headers(warnings))

    response_payload, warnings = await create_messages_response(payload)
    return JSONResponse(content=response_payload, headers=warning_headers(warnings))


@router.post("/messages/count_tokens")
async def messages_count_tokens(payload: CountTokensRequest):
    return count_tokens(payload)
