from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

import dialect_gateway.gemini.adapter as gemini_adapter
from dialect_gateway.core.completion import stream_completion_chunks
from dialect_gateway.core.config import GatewaySettings
from dialect_gateway.core.errors import GatewayError
from dialect_gateway.core.types import CanonicalResult, FinishReason
from dialect_gateway.main import create_app


def backend_chunk(content: str | None = None, finish_reason: str | None = None) -> str:
    delta = {} if content is None else {"content": content}
    record = {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}
    return f"data: {json.dumps(record)}\n\n"


def data_frames(body: str) -> list[dict]:
    assert body.endswith("\n\n")
    frames = []
    for block in body[:-2].split("\n\n"):
        assert block.startswith("data: ")
        frames.append(json.loads(block[len("data: ") :]))
    return frames


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture()
def patch_gemini_completion(monkeypatch):
    captured = {
        "request": None,
        "model": None,
    }

    async def fake_create_completion(request, model):
        captured["request"] = request
        captured["model"] = model
        return CanonicalResult(
            id="chatcmpl-stub",
            text="gemini stub completion",
            finish_reason=FinishReason.LENGTH,
            prompt_tokens=5,
            completion_tokens=7,
            total_tokens=12,
        )

    async def fake_stream_completion_chunks(request, model):
        captured["request"] = request
        captured["model"] = model
        yield backend_chunk("Hel")[:20]
        yield backend_chunk("Hel")[20:] + backend_chunk("lo")
        yield "data: {broken\n\n"
        yield backend_chunk(finish_reason="stop") + "data: [DONE]\n\n"

    monkeypatch.setattr(gemini_adapter, "create_completion", fake_create_completion)
    monkeypatch.setattr(
        gemini_adapter,
        "stream_completion_chunks",
        fake_stream_completion_chunks,
    )

    return captured


def test_generate_content_non_stream_success(client: TestClient, patch_gemini_completion):
    payload = {
        "systemInstruction": {"parts": [{"text": "Be terse."}]},
        "contents": [
            {"role": "user", "parts": [{"text": "Hi"}]},
            {"role": "model", "parts": [{"text": "Hello"}]},
            {"role": "user", "parts": [{"text": "Bye"}]},
        ],
    }

    response = client.post("/v1beta/models/gemini-pro:generateContent", json=payload)

    assert response.status_code == 200
    assert response.json() == {
        "candidates": [
            {
                "content": {"parts": [{"text": "gemini stub completion"}], "role": "model"},
                "finishReason": "MAX_TOKENS",
                "index": 0,
                "safetyRatings": [],
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 5,
            "candidatesTokenCount": 7,
            "totalTokenCount": 12,
        },
    }

    assert patch_gemini_completion["model"] == "gemini-pro"
    request = patch_gemini_completion["request"]
    assert request.to_backend_messages() == [
        {"role": "user", "content": "Be terse.\n\nHi"},
        {"role": "assistant", "content": "Hello"},
        {"role": "user", "content": "Bye"},
    ]


def test_stream_generate_content_frames(client: TestClient, patch_gemini_completion):
    payload = {"contents": [{"role": "user", "parts": [{"text": "Stream please"}]}]}

    with client.stream(
        "POST",
        "/v1beta/models/gemini-pro:streamGenerateContent?alt=sse",
        json=payload,
    ) as response:
        body = "".join(response.iter_text())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    frames = data_frames(body)
    assert len(frames) == 3
    assert [f["candidates"][0]["content"]["parts"][0]["text"] for f in frames] == [
        "Hel",
        "lo",
        "",
    ]
    assert [f["candidates"][0]["finishReason"] for f in frames] == [None, None, "STOP"]
    assert "usageMetadata" in frames[-1]
    assert "[DONE]" not in body


def test_generate_content_with_stream_flag_streams(client: TestClient, patch_gemini_completion):
    payload = {
        "stream": True,
        "contents": [{"role": "user", "parts": [{"text": "Stream please"}]}],
    }

    with client.stream(
        "POST", "/v1beta/models/gemini-pro:generateContent", json=payload
    ) as response:
        body = "".join(response.iter_text())

    assert response.status_code == 200
    assert data_frames(body)[-1]["candidates"][0]["finishReason"] == "STOP"


def test_count_tokens(client: TestClient):
    payload = {"contents": [{"role": "user", "parts": [{"text": "abcdefgh"}]}]}

    response = client.post("/v1beta/models/gemini-pro:countTokens", json=payload)

    assert response.status_code == 200
    assert response.json() == {"totalTokens": 2}


def test_empty_contents_returns_invalid_argument(client: TestClient):
    response = client.post("/v1beta/models/gemini-pro:generateContent", json={"contents": []})

    assert response.status_code == 400
    assert response.json() == {
        "error": {
            "code": 400,
            "message": "contents must contain at least one item.",
            "status": "INVALID_ARGUMENT",
        }
    }


def test_validation_error_uses_gemini_envelope(client: TestClient):
    response = client.post(
        "/v1beta/models/gemini-pro:generateContent",
        json={"contents": "not a list"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["status"] == "INVALID_ARGUMENT"


def test_backend_failure_maps_to_gemini_error(client: TestClient, monkeypatch):
    async def failing_completion(_request, _model):
        raise GatewayError(status_code=503, message="Completion service unavailable")

    monkeypatch.setattr(gemini_adapter, "create_completion", failing_completion)

    response = client.post(
        "/v1beta/models/gemini-pro:generateContent",
        json={"contents": [{"role": "user", "parts": [{"text": "Hello"}]}]},
    )

    assert response.status_code == 503
    assert response.json()["error"]["status"] == "UNAVAILABLE"


def test_stream_rejected_by_backend_returns_gemini_error(client: TestClient, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="quota exceeded")

    backend = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    settings = GatewaySettings(backend_base_url="http://backend.test/v1")

    def rejected_stream(request, model):
        return stream_completion_chunks(request, model, settings=settings, client=backend)

    monkeypatch.setattr(gemini_adapter, "stream_completion_chunks", rejected_stream)

    response = client.post(
        "/v1beta/models/gemini-pro:streamGenerateContent?alt=sse",
        json={"contents": [{"role": "user", "parts": [{"text": "Hello"}]}]},
    )

    assert response.status_code == 429
    error = response.json()["error"]
    assert error["code"] == 429
    assert error["status"] == "RESOURCE_EXHAUSTED"
    assert "quota exceeded" in error["message"]
