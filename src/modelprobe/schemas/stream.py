"""
Token timeline models produced by the streaming decoder.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from modelprobe.schemas.base import FrozenBaseModel, StandardBaseModel

__all__ = ["StreamMetrics", "TokenEvent"]


class TokenEvent(FrozenBaseModel):
    """One non-empty content delta received from a stream."""

    content: str = Field(min_length=1, description="Incremental content text.")
    sequence_index: int = Field(
        ge=1, description="1-based position of this token within the probe."
    )
    emitted_at_ms: int = Field(
        description="Milliseconds since the probe started when it was decoded."
    )


class StreamMetrics(StandardBaseModel):
    """
    Timing and token statistics for one decoded stream.

    All times are integer milliseconds relative to the decoder's start.
    ``ttfb_ms`` measures transport latency (first non-empty chunk), while
    ``first_token_ms`` measures generation latency (first non-empty content).
    """

    ttfb_ms: int | None = Field(
        default=None, description="Time until the first non-empty chunk arrived."
    )
    first_token_ms: int | None = Field(
        default=None, description="Time until the first non-empty content delta."
    )
    last_token_ms: int | None = Field(
        default=None, description="Time of the most recent content delta."
    )
    token_count: int = Field(
        default=0, ge=0, description="Number of non-empty content deltas."
    )
    total_time_ms: int = Field(
        default=0, ge=0, description="Time from start until the stream ended."
    )
    tokens_per_second: float = Field(
        default=0.0, ge=0, description="token_count over total time, 2 decimals."
    )
    average_token_interval_ms: float = Field(
        default=0.0, ge=0, description="Mean gap between consecutive tokens."
    )
    received_events: int = Field(
        default=0, ge=0, description="Decoded payloads, including keep-alives."
    )
    decode_failures: int = Field(
        default=0, ge=0, description="Events skipped because they were not JSON."
    )
    done_received: bool = Field(
        default=False, description="Whether the [DONE] sentinel was seen."
    )
    usage: dict[str, Any] | None = Field(
        default=None, description="Last usage block reported by the provider."
    )
    errors: list[Any] = Field(
        default_factory=list, description="Error payloads reported in-stream."
    )
    raw_event_log: list[Any] = Field(
        default_factory=list, description="Every decoded payload, in order."
    )

    @model_validator(mode="after")
    def _check_token_timeline(self) -> StreamMetrics:
        if self.token_count == 0:
            if self.first_token_ms is not None or self.last_token_ms is not None:
                raise ValueError("token times must be unset when no tokens arrived")
        elif (
            self.first_token_ms is None
            or self.last_token_ms is None
            or self.first_token_ms > self.last_token_ms
        ):
            raise ValueError("first_token_ms must not be after last_token_ms")

        return self
