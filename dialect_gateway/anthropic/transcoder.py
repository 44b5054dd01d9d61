from __future__ import annotations

from dialect_gateway.core.streaming import StreamTranscoder, encode_event_frame
from dialect_gateway.core.token_estimation import estimate_tokens
from dialect_gateway.core.types import CanonicalUsage


class MessagesStreamTranscoder(StreamTranscoder):
    """Frames backend deltas as Messages-style named SSE events.

    Emits ``message_start`` and ``content_block_start`` before the first
    delta, one ``content_block_delta`` per text fragment, and
    ``content_block_stop``/``message_delta``/``message_stop`` on finish. The
    streamed stop reason is always ``end_turn``; only batch responses map
    ``length`` to ``max_tokens``.
    """

    def __init__(self, message_id: str, model: str) -> None:
        super().__init__(message_id)
        self.model = model

    def start_frames(self) -> list[bytes]:
        start_event = {
            "type": "message_start",
            "message": {
                "id": self.state.message_id,
                "type": "message",
                "role": "assistant",
                "model": self.model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {
                    "input_tokens": 0,
                    "output_tokens": 0,
                },
            },
        }
        block_start_event = {
            "type": "content_block_start",
            "index": 0,
            "content_block": {
                "type": "text",
                "text": "",
            },
        }
        return [
            encode_event_frame("message_start", start_event),
            encode_event_frame("content_block_start", block_start_event),
        ]

    def text_frames(self, fragment: str) -> list[bytes]:
        delta_event = {
            "type": "content_block_delta",
            "index": 0,
            "delta": {
                "type": "text_delta",
                "text": fragment,
            },
        }
        return [encode_event_frame("content_block_delta", delta_event)]

    def finish_frames(self, usage: CanonicalUsage | None) -> list[bytes]:
        if usage is not None and usage.completion_tokens:
            output_tokens = usage.completion_tokens
        else:
            output_tokens = max(1, estimate_tokens(self.state.accumulated_text))

        block_stop_event = {
            "type": "content_block_stop",
            "index": 0,
        }
        message_delta_event = {
            "type": "message_delta",
            "delta": {
                "stop_reason": "end_turn",
                "stop_sequence": None,
            },
            "usage": {
                "output_tokens": output_tokens,
            },
        }
        return [
            encode_event_frame("content_block_stop", block_stop_event),
            encode_event_frame("message_delta", message_delta_event),
            encode_event_frame("message_stop", {"type": "message_stop"}),
        ]
