from __future__ import annotations

import math

from .types import CanonicalRequest


def estimate_tokens(text: str) -> int:
    if not text:
        return 0

    return max(1, math.ceil(len(text) / 4))


def estimate_request_tokens(request: CanonicalRequest) -> int:
    return estimate_tokens("\n".join(message.content for message in request.messages))
