"""
Incremental Server-Sent-Events decoder for OpenAI-compatible chat streams.

Turns an arbitrarily chunked text or byte stream into content token events
plus lifecycle events, and derives the stream's token timeline. Chunk
boundaries never need to line up with lines or events: only newline
terminated lines are parsed and the remainder is carried over to the next
``feed`` call.

Events emitted on the decoder's bus:

- ``start``: decoding started
- ``ttfb``: first non-empty chunk arrived, payload is milliseconds
- ``first-token``: first non-empty content delta, payload is milliseconds
- ``token``: a TokenEvent
- ``progress``: dict with the running token count after each payload
- ``usage``: a provider usage block
- ``error``: an error payload reported inside the stream
- ``done``: the ``[DONE]`` sentinel was received
- ``complete``: final StreamMetrics, always the last event
"""

from __future__ import annotations

import codecs
import time
from collections.abc import Callable
from typing import Any

import orjson
from loguru import logger

from modelprobe.schemas import StreamMetrics, TokenEvent
from modelprobe.utils import EventBus, EventCallback, safe_divide

__all__ = ["DONE_SENTINEL", "StreamDecoder", "extract_content"]

DONE_SENTINEL = "[DONE]"


def extract_content(payload: dict[str, Any]) -> str | None:
    """
    Extract the incremental content from a decoded chunk.

    Reads ``choices[0].delta.content`` when ``choices`` is a non-empty list and
    falls back to a top-level ``content`` field otherwise. An empty
    ``choices`` list, sent first by some reasoning-model backends, means no
    content yet.

    :param payload: Decoded JSON object of one SSE event
    :return: The content string, possibly empty, or None if there is none
    """
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
    else:
        content = payload.get("content")

    return content if isinstance(content, str) else None


class StreamDecoder:
    """
    Stateful SSE decoder that tracks token timing for one stream.

    Example:
    ::
        decoder = StreamDecoder()
        decoder.subscribe("token", lambda event: print(event.payload.content))
        decoder.start()
        decoder.feed('data: {"choices": [{"delta": {"content": "Hi"}}]}\\n')
        decoder.feed("\\ndata: [DONE]\\n\\n")
        metrics = decoder.finish()
        assert metrics.token_count == 1
    """

    def __init__(self, clock: Callable[[], float] | None = None):
        """
        :param clock: Monotonic clock returning seconds, defaults to
            time.perf_counter
        """
        self._clock = clock or time.perf_counter
        self.events = EventBus()
        self._started_at: float | None = None
        self.reset()

    def subscribe(self, kind: str | None, callback: EventCallback):
        return self.events.subscribe(kind, callback)

    def reset(self):
        """Clear all decoding state, keeping subscribers."""
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._data_lines: list[str] = []
        self._fields: dict[str, Any] = {}
        self._ttfb_ms: int | None = None
        self._first_token_ms: int | None = None
        self._last_token_ms: int | None = None
        self._received_events = 0
        self._decode_failures = 0
        self._usage: dict[str, Any] | None = None
        self._errors: list[Any] = []
        self._raw_events: list[Any] = []
        self._done = False
        self._final: StreamMetrics | None = None
        self.tokens: list[TokenEvent] = []

    def start(self):
        """Reset state and record the reference clock for all timings."""
        self.reset()
        self._started_at = self._clock()
        self.events.emit("start", {"timestamp": time.time()})

    @property
    def started(self) -> bool:
        return self._started_at is not None

    @property
    def completed(self) -> bool:
        return self._final is not None

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    def feed(self, chunk: str | bytes) -> list[TokenEvent]:
        """
        Append a chunk of the stream and process every complete line in it.

        :param chunk: Text or bytes of any size, split anywhere
        :return: Tokens decoded from this chunk
        :raises RuntimeError: If start() has not been called
        """
        if self._started_at is None:
            raise RuntimeError("StreamDecoder.start() must be called before feed().")

        if self._final is not None:
            return []

        if self._ttfb_ms is None and chunk:
            self._ttfb_ms = self._elapsed_ms()
            self.events.emit("ttfb", self._ttfb_ms)

        text = self._utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text

        # the last segment is incomplete unless the buffer ended in a newline
        *lines, self._buffer = self._buffer.split("\n")
        first_new = len(self.tokens)

        for line in lines:
            if self._process_line(line.removesuffix("\r")):
                self.finish()
                break

        return self.tokens[first_new:]

    def finish(self) -> StreamMetrics:
        """
        End the stream and compute the final metrics.

        Without a ``[DONE]`` sentinel the transport closing is taken as the
        end of the last line, so any buffered remainder is still decoded.
        Calling finish() again returns the same metrics.

        :return: Final StreamMetrics
        :raises RuntimeError: If start() has not been called
        """
        if self._final is not None:
            return self._final

        if self._started_at is None:
            raise RuntimeError("StreamDecoder.start() must be called before finish().")

        if not self._done:
            tail = self._buffer + self._utf8.decode(b"", final=True)
            self._buffer = ""
            if tail:
                self._process_line(tail.removesuffix("\r"))
            self._dispatch()
        self._buffer = ""

        self._final = self._build_metrics(self._elapsed_ms(), final=True)
        self.events.emit("complete", self._final)

        return self._final

    def snapshot(self) -> StreamMetrics:
        """
        :return: Metrics for the stream so far, or the final metrics if done
        """
        if self._final is not None:
            return self._final

        elapsed = self._elapsed_ms() if self._started_at is not None else 0
        return self._build_metrics(elapsed, final=False)

    def _elapsed_ms(self) -> int:
        return int((self._clock() - self._started_at) * 1000)  # type: ignore[operator]

    def _process_line(self, line: str) -> bool:
        if not line:
            self._dispatch()
            return False

        if line.startswith(":"):
            # comment, used by some servers as keep-alive
            return False

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            if value.strip() == DONE_SENTINEL:
                self._dispatch()
                self._done = True
                self.events.emit("done", self._elapsed_ms())
                return True
            self._data_lines.append(value)
        elif name in ("event", "id"):
            self._fields[name] = value
        elif name == "retry" and value.strip().isdigit():
            self._fields[name] = int(value)

        return False

    def _dispatch(self):
        data_lines, self._data_lines = self._data_lines, []
        self._fields = {}

        for payload in self._decode(data_lines):
            self._process_payload(payload)

    def _decode(self, data_lines: list[str]) -> list[Any]:
        joined = "\n".join(data_lines)
        if not joined.strip():
            return []

        try:
            return [orjson.loads(joined)]
        except orjson.JSONDecodeError as err:
            if len(data_lines) == 1:
                self._log_decode_failure(joined, err)
                return []

        # servers that separate events with a single newline
        payloads = []
        for line in data_lines:
            if not line.strip():
                continue
            try:
                payloads.append(orjson.loads(line))
            except orjson.JSONDecodeError as err:
                self._log_decode_failure(line, err)

        return payloads

    def _log_decode_failure(self, data: str, err: Exception):
        self._decode_failures += 1
        logger.debug(
            f"Skipping SSE event that is not valid JSON ({err}): {data[:100]!r}"
        )

    def _process_payload(self, payload: Any):
        self._received_events += 1
        self._raw_events.append(payload)

        if not isinstance(payload, dict):
            return

        content = extract_content(payload)
        if content:
            elapsed = self._elapsed_ms()
            if self._first_token_ms is None:
                self._first_token_ms = elapsed
                self.events.emit("first-token", elapsed)
            self._last_token_ms = elapsed

            token = TokenEvent(
                content=content,
                sequence_index=len(self.tokens) + 1,
                emitted_at_ms=elapsed,
            )
            self.tokens.append(token)
            self.events.emit("token", token)

        usage = payload.get("usage")
        if isinstance(usage, dict) and usage:
            self._usage = usage
            self.events.emit("usage", usage)
        elif usage:
            self._decode_failures += 1
            logger.debug(f"Skipping usage block that is not an object: {usage!r}")

        if error := payload.get("error"):
            self._errors.append(error)
            self.events.emit("error", error)

        self.events.emit(
            "progress",
            {
                "token_count": len(self.tokens),
                "received_events": self._received_events,
                "content": content or "",
            },
        )

    def _build_metrics(self, total_time_ms: int, final: bool) -> StreamMetrics:
        token_count = len(self.tokens)
        tokens_per_second = (
            round(safe_divide(token_count, total_time_ms / 1000), 2)
            if token_count
            else 0.0
        )
        interval = (
            safe_divide(
                self._last_token_ms - self._first_token_ms,  # type: ignore[operator]
                token_count - 1,
            )
            if token_count > 1
            else 0.0
        )

        return StreamMetrics(
            ttfb_ms=self._ttfb_ms,
            first_token_ms=self._first_token_ms,
            last_token_ms=self._last_token_ms,
            token_count=token_count,
            total_time_ms=total_time_ms,
            tokens_per_second=tokens_per_second,
            average_token_interval_ms=interval,
            received_events=self._received_events,
            decode_failures=self._decode_failures,
            done_received=self._done,
            usage=self._usage,
            errors=list(self._errors),
            raw_event_log=list(self._raw_events) if final else [],
        )
