from __future__ import annotations

from typing import Any

from dialect_gateway.core.streaming import StreamTranscoder, encode_data_frame
from dialect_gateway.core.token_estimation import estimate_tokens
from dialect_gateway.core.types import CanonicalUsage


def candidate_payload(text: str, finish_reason: str | None) -> dict[str, Any]:
    return {
        "content": {
            "parts": [{"text": text}],
            "role": "model",
        },
        "finishReason": finish_reason,
        "index": 0,
        "safetyRatings": [],
    }


class GenerateContentStreamTranscoder(StreamTranscoder):
    """Frames backend deltas as unnamed generateContent ``data:`` frames.

    The terminal frame always reports ``STOP``; ``MAX_TOKENS`` is only
    produced for batch responses.
    """

    def __init__(self, message_id: str, prompt_tokens: int = 0) -> None:
        super().__init__(message_id)
        self.prompt_tokens = prompt_tokens

    def text_frames(self, fragment: str) -> list[bytes]:
        return [encode_data_frame({"candidates": [candidate_payload(fragment, None)]})]

    def finish_frames(self, usage: CanonicalUsage | None) -> list[bytes]:
        if usage is not None and usage.total_tokens:
            prompt_tokens = usage.prompt_tokens
            candidates_tokens = usage.completion_tokens
        else:
            prompt_tokens = max(1, self.prompt_tokens)
            candidates_tokens = max(1, estimate_tokens(self.state.accumulated_text))

        final_chunk = {
            "candidates": [candidate_payload("", "STOP")],
            "usageMetadata": {
                "promptTokenCount": prompt_tokens,
                "candidatesTokenCount": candidates_tokens,
                "totalTokenCount": prompt_tokens + candidates_tokens,
            },
        }
        return [encode_data_frame(final_chunk)]
