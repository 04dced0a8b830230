"""
Unit tests for the incremental SSE StreamDecoder.
"""

from __future__ import annotations

import pytest

from modelprobe.stream import DONE_SENTINEL, StreamDecoder, extract_content
from tests.unit.testing_utils import StepClock, delta, sse

STREAM = sse(
    {"choices": []},
    delta(""),
    delta("Hel"),
    delta("lo, "),
    delta("wörld"),
    {"choices": [{"delta": {}}], "usage": {"completion_tokens": 3}},
)


def decode(chunks, clock=None):
    decoder = StreamDecoder(clock=clock or StepClock())
    decoder.start()
    tokens = []
    for chunk in chunks:
        tokens.extend(decoder.feed(chunk))
    return decoder, tokens, decoder.finish()


def split_every(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


class TestExtractContent:
    @pytest.mark.smoke
    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            (delta("hi"), "hi"),
            (delta(""), ""),
            (delta(None), None),
            ({"choices": []}, None),
            ({"choices": [], "content": "top"}, "top"),
            ({"content": "top"}, "top"),
            ({"choices": [{"delta": None}]}, None),
            ({"id": "chunk"}, None),
        ],
    )
    def test_paths(self, payload, expected):
        assert extract_content(payload) == expected


class TestStreamDecoder:
    @pytest.mark.smoke
    def test_decodes_tokens_and_metrics(self):
        decoder, tokens, metrics = decode([STREAM])

        assert [token.content for token in tokens] == ["Hel", "lo, ", "wörld"]
        assert [token.sequence_index for token in tokens] == [1, 2, 3]
        assert metrics.token_count == 3
        assert metrics.received_events == 6
        assert metrics.done_received is True
        assert metrics.usage == {"completion_tokens": 3}
        assert len(metrics.raw_event_log) == 6
        assert decoder.completed

    @pytest.mark.sanity
    @pytest.mark.parametrize("size", [1, 2, 3, 7, 13, 64])
    def test_chunk_split_invariance(self, size):
        _, expected, expected_metrics = decode([STREAM])
        _, tokens, metrics = decode(split_every(STREAM, size))

        assert [token.content for token in tokens] == [
            token.content for token in expected
        ]
        assert metrics.token_count == expected_metrics.token_count

    @pytest.mark.sanity
    @pytest.mark.parametrize("size", [1, 2, 5, 11])
    def test_byte_split_mid_character(self, size):
        raw = STREAM.encode("utf-8")
        chunks = [raw[i : i + size] for i in range(0, len(raw), size)]
        _, tokens, _ = decode(chunks)

        assert "".join(token.content for token in tokens) == "Hello, wörld"

    @pytest.mark.sanity
    def test_timeline_ordering(self):
        _, _, metrics = decode(split_every(STREAM, 5))

        assert metrics.token_count > 0
        assert metrics.ttfb_ms <= metrics.first_token_ms
        assert metrics.first_token_ms <= metrics.last_token_ms
        assert metrics.last_token_ms <= metrics.total_time_ms

    @pytest.mark.sanity
    def test_done_ends_with_dangling_partial_line(self):
        decoder, tokens, _ = decode(
            [sse(delta("a"), done=False), "data: [DONE]\n", 'data: {"choi']
        )

        assert decoder.completed
        assert [token.content for token in tokens] == ["a"]
        assert decoder.feed(sse(delta("late"))) == []
        assert decoder.finish().token_count == 1

    @pytest.mark.sanity
    def test_done_without_trailing_newline_terminates_at_finish(self):
        decoder = StreamDecoder(clock=StepClock())
        decoder.start()
        decoder.feed(sse(delta("x"), done=False) + f"data: {DONE_SENTINEL}")
        assert not decoder.completed

        metrics = decoder.finish()
        assert metrics.done_received is True
        assert metrics.token_count == 1

    @pytest.mark.sanity
    def test_empty_content_is_received_but_not_counted(self):
        _, tokens, metrics = decode([sse(delta(""), delta(""))])

        assert tokens == []
        assert metrics.received_events == 2
        assert metrics.token_count == 0
        assert metrics.first_token_ms is None
        assert metrics.last_token_ms is None
        assert metrics.tokens_per_second == 0

    @pytest.mark.sanity
    def test_invalid_json_is_skipped(self):
        body = (
            sse(delta("one"), done=False)
            + 'data: {"choices": [{"delta": {"content_fil\n\n'
            + sse(delta("two"))
        )
        _, tokens, metrics = decode([body])

        assert [token.content for token in tokens] == ["one", "two"]
        assert metrics.decode_failures == 1

    @pytest.mark.sanity
    def test_multiline_data_is_joined(self):
        body = 'data: {"choices": [{"delta":\ndata: {"content": "joined"}}]}\n\n'
        _, tokens, _ = decode([body])

        assert [token.content for token in tokens] == ["joined"]

    @pytest.mark.sanity
    def test_single_newline_separated_events(self):
        body = "".join(
            f'data: {{"content": "{word}"}}\n' for word in ("a", "b", "c")
        )
        _, tokens, metrics = decode([body + "\n"])

        assert [token.content for token in tokens] == ["a", "b", "c"]
        assert metrics.decode_failures == 0

    @pytest.mark.sanity
    def test_comments_and_fields_are_ignored(self):
        body = (
            ": keep-alive\n"
            "event: message\n"
            "id: 7\n"
            "retry: 1000\n"
            + sse(delta("x"), done=False)
            + "data: [DONE]\r\n\r\n"
        )
        _, tokens, metrics = decode([body])

        assert [token.content for token in tokens] == ["x"]
        assert metrics.done_received

    @pytest.mark.sanity
    def test_stream_without_done_flushes_tail(self):
        _, tokens, metrics = decode(['data: {"content": "tail"}'])

        assert [token.content for token in tokens] == ["tail"]
        assert metrics.done_received is False

    @pytest.mark.sanity
    def test_ttfb_set_on_first_non_empty_chunk(self):
        clock = StepClock(step=0.1)
        decoder = StreamDecoder(clock=clock)
        decoder.start()
        decoder.feed("")
        assert decoder.snapshot().ttfb_ms is None

        decoder.feed(": ping\n")
        ttfb = decoder.snapshot().ttfb_ms
        assert ttfb is not None

        decoder.feed(sse(delta("x")))
        assert decoder.finish().ttfb_ms == ttfb

    @pytest.mark.regression
    def test_ttfb_set_on_partial_multibyte_chunk(self):
        decoder = StreamDecoder(clock=StepClock())
        decoder.start()

        assert decoder.feed(b"\xc3") == []
        assert decoder.snapshot().ttfb_ms is not None

    @pytest.mark.regression
    @pytest.mark.parametrize("usage", [[1, 2], "3 tokens", 7])
    def test_non_object_usage_is_skipped(self, usage):
        _, tokens, metrics = decode([sse(delta("hi"), {"usage": usage})])

        assert [token.content for token in tokens] == ["hi"]
        assert metrics.usage is None
        assert metrics.decode_failures == 1
        assert metrics.token_count == 1

    @pytest.mark.sanity
    def test_tokens_per_second(self):
        clock = StepClock(step=0.25)
        _, _, metrics = decode([sse(delta("a"), delta("b"))], clock=clock)

        expected = round(metrics.token_count / (metrics.total_time_ms / 1000), 2)
        assert metrics.tokens_per_second == expected

    @pytest.mark.sanity
    def test_events(self):
        decoder = StreamDecoder(clock=StepClock())
        kinds = []
        decoder.subscribe(None, lambda event: kinds.append(event.kind))
        decoder.start()
        decoder.feed(sse(delta("a"), {"error": {"message": "filtered"}}))

        assert kinds[0] == "start"
        assert kinds[1] == "ttfb"
        assert "first-token" in kinds
        assert "token" in kinds
        assert "error" in kinds
        assert kinds[-2:] == ["done", "complete"]
        assert decoder.finish().errors == [{"message": "filtered"}]

    @pytest.mark.sanity
    def test_finish_is_idempotent(self):
        decoder, _, metrics = decode([sse(delta("a"))])
        assert decoder.finish() is metrics

    @pytest.mark.regression
    def test_start_resets_state(self):
        decoder, _, _ = decode([sse(delta("a"))])
        decoder.start()

        assert decoder.token_count == 0
        assert not decoder.completed
        decoder.feed(sse(delta("b"), delta("c")))
        assert decoder.finish().token_count == 2

    @pytest.mark.sanity
    def test_feed_before_start_raises(self):
        decoder = StreamDecoder()
        with pytest.raises(RuntimeError, match="start"):
            decoder.feed("data: {}\n\n")
        with pytest.raises(RuntimeError, match="start"):
            decoder.finish()
