"""Shared machinery for turning the backend's chunked SSE stream into dialect frames.

The backend stream is modelled as discrete notifications (``data``, ``error``,
``close``). A :class:`StreamTranscoder` reacts to one notification at a time and
returns the frames to write; :func:`transcode_stream` drives it from an async
iterator of raw chunks and yields frames in order.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator

from .types import CanonicalDelta, CanonicalUsage, FinishReason

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class Phase(str, Enum):
    NOT_STARTED = "not_started"
    STREAMING = "streaming"
    FINISHED = "finished"


@dataclass(slots=True)
class TranscoderState:
    message_id: str
    phase: Phase = Phase.NOT_STARTED
    accumulated_text: str = ""
    line_buffer: str = ""


class UpstreamEventKind(str, Enum):
    DATA = "data"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True, slots=True)
class UpstreamEvent:
    kind: UpstreamEventKind
    chunk: str | bytes = ""
    error: BaseException | None = None

    @classmethod
    def data(cls, chunk: str | bytes) -> UpstreamEvent:
        return cls(UpstreamEventKind.DATA, chunk=chunk)

    @classmethod
    def failed(cls, error: BaseException) -> UpstreamEvent:
        return cls(UpstreamEventKind.ERROR, error=error)

    @classmethod
    def closed(cls) -> UpstreamEvent:
        return cls(UpstreamEventKind.CLOSE)


class MalformedDeltaError(ValueError):
    pass


def parse_delta_line(line: str) -> CanonicalDelta | None:
    """Parse one complete SSE line from the backend.

    Returns None for lines that carry no delta (blank lines, the ``[DONE]``
    sentinel, non-data fields, records without choices). Raises
    :class:`MalformedDeltaError` when a data line is not a JSON object.
    """
    stripped = line.strip()
    if not stripped or not stripped.startswith(DATA_PREFIX):
        return None

    payload = stripped[len(DATA_PREFIX) :].strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        record = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedDeltaError(f"invalid JSON in stream line: {exc}") from exc

    if not isinstance(record, dict):
        raise MalformedDeltaError("stream record is not a JSON object")

    choices = record.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None

    choice = choices[0]
    delta = choice.get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None

    return CanonicalDelta(
        text_fragment=content if isinstance(content, str) and content else None,
        finish_reason=FinishReason.from_backend(choice.get("finish_reason")),
        usage=_parse_usage(record.get("usage")),
    )


class StreamTranscoder:
    """Per-connection state machine from backend notifications to output frames.

    Subclasses supply the dialect framing through :meth:`start_frames`,
    :meth:`text_frames` and :meth:`finish_frames`.
    """

    def __init__(self, message_id: str) -> None:
        self.state = TranscoderState(message_id=message_id)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, event: UpstreamEvent) -> list[bytes]:
        if self._closed:
            return []

        if event.kind is UpstreamEventKind.DATA:
            return self._on_data(event.chunk)

        if event.kind is UpstreamEventKind.ERROR:
            logger.error(
                "Upstream stream failed for %s: %s",
                self.state.message_id,
                event.error,
                exc_info=event.error,
            )
            self.close()
            return []

        if event.kind is UpstreamEventKind.CLOSE:
            frames = self._flush()
            if self.state.phase is not Phase.FINISHED:
                logger.info(
                    "Upstream closed before finish for %s", self.state.message_id
                )
            self.close()
            return frames

        raise ValueError(f"Unknown upstream event kind: {event.kind!r}")

    def start_frames(self) -> list[bytes]:
        return []

    def text_frames(self, fragment: str) -> list[bytes]:
        raise NotImplementedError

    def finish_frames(self, usage: CanonicalUsage | None) -> list[bytes]:
        raise NotImplementedError

    def _on_data(self, chunk: str | bytes) -> list[bytes]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        data = self.state.line_buffer + chunk
        *lines, self.state.line_buffer = data.split("\n")
        return self._on_lines(lines)

    def _flush(self) -> list[bytes]:
        tail = self.state.line_buffer + self._decoder.decode(b"", final=True)
        self.state.line_buffer = ""
        if not tail:
            return []
        return self._on_lines([tail])

    def _on_lines(self, lines: list[str]) -> list[bytes]:
        frames: list[bytes] = []

        for line in lines:
            try:
                delta = parse_delta_line(line.rstrip("\r"))
            except MalformedDeltaError as exc:
                logger.warning(
                    "Skipping unparsable stream line for %s: %s",
                    self.state.message_id,
                    exc,
                )
                continue

            if delta is None:
                continue

            frames.extend(self._on_delta(delta))
            if self.state.phase is Phase.FINISHED:
                self.close()
                break

        return frames

    def _on_delta(self, delta: CanonicalDelta) -> list[bytes]:
        frames: list[bytes] = []

        if self.state.phase is Phase.NOT_STARTED:
            frames.extend(self.start_frames())
            self.state.phase = Phase.STREAMING

        if delta.text_fragment:
            self.state.accumulated_text += delta.text_fragment
            frames.extend(self.text_frames(delta.text_fragment))

        if delta.finish_reason is not None:
            frames.extend(self.finish_frames(delta.usage))
            self.state.phase = Phase.FINISHED

        return frames

    def close(self) -> None:
        """Stop reacting to notifications and drop any buffered partial line."""
        self._closed = True
        self.state.line_buffer = ""


async def upstream_events(
    chunks: AsyncIterator[str | bytes],
) -> AsyncIterator[UpstreamEvent]:
    """Wrap a raw chunk iterator as data/error/close notifications."""
    try:
        async for chunk in chunks:
            yield UpstreamEvent.data(chunk)
    except Exception as exc:
        yield UpstreamEvent.failed(exc)
        return

    yield UpstreamEvent.closed()


async def prime_chunks(
    chunks: AsyncIterator[str | bytes],
) -> AsyncIterator[str | bytes]:
    """Pull the first chunk now so a rejected upstream raises before headers go out.

    Failures on the first read propagate to the caller. The returned iterator
    replays that chunk and then continues with the rest of ``chunks``.
    """
    try:
        first = await anext(chunks)
    except StopAsyncIteration:
        return _replay(None, chunks)
    return _replay(first, chunks)


async def _replay(
    first: str | bytes | None,
    rest: AsyncIterator[str | bytes],
) -> AsyncIterator[str | bytes]:
    try:
        if first is not None:
            yield first
        async for chunk in rest:
            yield chunk
    finally:
        aclose = getattr(rest, "aclose", None)
        if aclose is not None:
            await aclose()


async def transcode_stream(
    transcoder: StreamTranscoder,
    chunks: AsyncIterator[str | bytes],
) -> AsyncIterator[bytes]:
    """Feed backend chunks through ``transcoder`` and yield output frames.

    The generator suspends on every frame until the consumer pulls the next
    one, so a slow client stalls the upstream read instead of losing frames.
    Closing the generator (client disconnect) closes the upstream iterator.
    """
    events = upstream_events(chunks)
    try:
        async for event in events:
            for frame in transcoder.feed(event):
                yield frame
            if transcoder.closed:
                break
    finally:
        transcoder.close()
        await events.aclose()
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


def encode_event_frame(event: str, payload: dict[str, Any]) -> bytes:
    serialized = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\ndata: {serialized}\n\n".encode("utf-8")


def encode_data_frame(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def _parse_usage(raw: Any) -> CanonicalUsage | None:
    if not isinstance(raw, dict):
        return None

    def _count(key: str) -> int:
        value = raw.get(key)
        return value if isinstance(value, int) and not isinstance(value, bool) else 0

    return CanonicalUsage(
        prompt_tokens=_count("prompt_tokens"),
        completion_tokens=_count("completion_tokens"),
        total_tokens=_count("total_tokens"),
    )
