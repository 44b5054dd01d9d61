from __future__ import annotations

from dialect_gateway.anthropic.adapter import (
    normalize_messages_request,
    synthesize_messages_response,
)
from dialect_gateway.anthropic.schemas import MessagesRequest
from dialect_gateway.core.types import CanonicalResult, FinishReason
from dialect_gateway.gemini.adapter import (
    normalize_generate_content_request,
    synthesize_generate_content_response,
)
from dialect_gateway.gemini.schemas import GenerateContentRequest


def messages_request(**body) -> MessagesRequest:
    return MessagesRequest.model_validate({"model": "sonnet", **body})


def gemini_request(**body) -> GenerateContentRequest:
    return GenerateContentRequest.model_validate(body)


def test_messages_normalizer_preserves_order_and_roles():
    request = messages_request(
        messages=[
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": [{"type": "text", "text": "two"}]},
            {"role": "user", "content": "three"},
        ]
    )

    canonical = normalize_messages_request(request.messages, request.system)

    assert [(m.role, m.content) for m in canonical.messages] == [
        ("user", "one"),
        ("assistant", "two"),
        ("user", "three"),
    ]
    assert canonical.system_text is None


def test_messages_normalizer_joins_text_blocks_and_drops_images():
    request = messages_request(
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "look at"},
                    {"type": "image", "source": {"type": "base64", "data": "..."}},
                    {"type": "text", "text": "this"},
                ],
            }
        ]
    )

    canonical = normalize_messages_request(request.messages, request.system)

    assert canonical.messages[0].content == "look at\nthis"
    assert canonical.warnings == ["Ignored non-text content blocks in messages[0].content."]


def test_system_text_prepended_once_to_first_user_message():
    request = messages_request(
        system=[{"type": "text", "text": "Be brief."}, {"type": "text", "text": "Be kind."}],
        messages=[
            {"role": "assistant", "content": "earlier reply"},
            {"role": "user", "content": "first"},
            {"role": "user", "content": "second"},
        ],
    )

    canonical = normalize_messages_request(request.messages, request.system)

    assert canonical.system_text == "Be brief.\nBe kind."
    assert canonical.messages[0].content == "earlier reply"
    assert canonical.messages[1].content == "Be brief.\nBe kind.\n\nfirst"
    assert canonical.messages[2].content == "second"
    joined = "".join(m.content for m in canonical.messages)
    assert joined.count("Be brief.") == 1


def test_messages_normalizer_skips_unknown_roles_and_degrades_bad_content():
    request = messages_request(
        messages=[
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": 42},
            {"role": "assistant"},
            "not an object",
            {"role": "user", "content": [{"type": "text", "text": 5}, "junk"]},
        ]
    )

    canonical = normalize_messages_request(request.messages, request.system)

    assert [(m.role, m.content) for m in canonical.messages] == [
        ("user", ""),
        ("assistant", ""),
        ("user", ""),
    ]
    assert "Skipped messages[3] with unsupported role ''." in canonical.warnings


def test_messages_normalizer_drops_system_without_user_message():
    request = messages_request(system="sys", messages=[{"role": "assistant", "content": "hi"}])

    canonical = normalize_messages_request(request.messages, request.system)

    assert canonical.messages[0].content == "hi"
    assert any("Dropped system prompt" in warning for warning in canonical.warnings)


def test_gemini_normalizer_maps_model_role_and_prepends_instruction():
    request = gemini_request(
        systemInstruction={"parts": [{"text": "Answer in French."}]},
        contents=[
            {"role": "model", "parts": [{"text": "Bonjour"}]},
            {"role": "user", "parts": [{"text": "Hello"}, {"text": "there"}]},
            {"role": "function", "parts": [{"text": "tool output"}]},
        ],
    )

    canonical = normalize_generate_content_request(request.contents, request.system_instruction)

    assert [(m.role, m.content) for m in canonical.messages] == [
        ("assistant", "Bonjour"),
        ("user", "Answer in French.\n\nHello\nthere"),
        ("user", "tool output"),
    ]


def test_gemini_normalizer_accepts_string_and_snake_case_instruction():
    for key in ("systemInstruction", "system_instruction"):
        request = gemini_request(
            **{key: "sys"},
            contents=[{"parts": [{"text": "hi"}]}],
        )

        canonical = normalize_generate_content_request(
            request.contents, request.system_instruction
        )

        assert canonical.messages[0].role == "user"
        assert canonical.messages[0].content == "sys\n\nhi"


def test_gemini_normalizer_degrades_malformed_parts():
    request = gemini_request(
        contents=[
            {"role": "user", "parts": "oops"},
            {"role": "user"},
            {"role": "user", "parts": [{"inlineData": {"mimeType": "image/png"}}, {"text": ""}]},
        ]
    )

    canonical = normalize_generate_content_request(request.contents, request.system_instruction)

    assert [m.content for m in canonical.messages] == ["", "", ""]


def test_gemini_normalizer_keeps_non_object_turns_as_empty_user_turns():
    request = gemini_request(
        contents=[
            {"role": "user", "parts": [{"text": "Hi"}]},
            "not an object",
            {"role": "model", "parts": [{"text": "Hello"}]},
        ]
    )

    canonical = normalize_generate_content_request(request.contents, request.system_instruction)

    assert [(m.role, m.content) for m in canonical.messages] == [
        ("user", "Hi"),
        ("user", ""),
        ("assistant", "Hello"),
    ]


def test_backend_messages_render_canonical_shape():
    request = gemini_request(contents=[{"role": "model", "parts": [{"text": "x"}]}])

    canonical = normalize_generate_content_request(request.contents, request.system_instruction)

    assert canonical.to_backend_messages() == [{"role": "assistant", "content": "x"}]


def make_result(**overrides) -> CanonicalResult:
    values = {
        "id": "chatcmpl-abc",
        "text": "Hello",
        "finish_reason": FinishReason.STOP,
        "prompt_tokens": 4,
        "completion_tokens": 2,
        "total_tokens": 6,
    }
    values.update(overrides)
    return CanonicalResult(**values)


def test_messages_synthesizer_shape():
    payload = synthesize_messages_response(make_result(), "sonnet")

    assert payload == {
        "id": "chatcmpl-abc",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": "Hello"}],
        "model": "sonnet",
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": 4, "output_tokens": 2},
    }


def test_messages_synthesizer_maps_non_stop_and_generates_id():
    payload = synthesize_messages_response(
        make_result(id="", finish_reason=FinishReason.LENGTH), "sonnet"
    )

    assert payload["stop_reason"] == "max_tokens"
    assert payload["id"].startswith("msg_")


def test_gemini_synthesizer_shape():
    payload = synthesize_generate_content_response(make_result())

    assert payload == {
        "candidates": [
            {
                "content": {"parts": [{"text": "Hello"}], "role": "model"},
                "finishReason": "STOP",
                "index": 0,
                "safetyRatings": [],
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 4,
            "candidatesTokenCount": 2,
            "totalTokenCount": 6,
        },
    }


def test_gemini_synthesizer_maps_non_stop_to_max_tokens():
    payload = synthesize_generate_content_response(
        make_result(finish_reason=FinishReason.OTHER)
    )

    assert payload["candidates"][0]["finishReason"] == "MAX_TOKENS"


def test_synthesizers_are_idempotent():
    result = make_result()

    assert synthesize_messages_response(result, "m") == synthesize_messages_response(result, "m")
    assert synthesize_generate_content_response(result) == synthesize_generate_content_response(
        result
    )
