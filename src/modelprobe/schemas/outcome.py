"""
Classified probe outcomes and the run report that collects them.

Each probe ends in exactly one of four outcomes: Valid, Inconsistent (the
endpoint answered with a different model), Invalid (HTTP or transport
failure) or StreamEmpty (a normal HTTP 200 stream with no usable content).
Outcomes are frozen once classified. Every outcome can be flattened into a
ProbeRecord, the shape consumed by the metrics engine and stored in
monitoring sessions.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Field

from modelprobe.schemas.base import FrozenBaseModel, StandardBaseModel
from modelprobe.schemas.request import ProbeMode
from modelprobe.schemas.stream import StreamMetrics

__all__ = [
    "ErrorKind",
    "InconsistentOutcome",
    "InvalidOutcome",
    "OrchestrationFailure",
    "ProbeOutcome",
    "ProbeRecord",
    "RunReport",
    "StreamEmptyOutcome",
    "ValidOutcome",
]


class ErrorKind(str, Enum):
    """Classification of why a probe failed."""

    AUTH_FAILURE = "auth_failure"
    MODEL_NOT_FOUND = "model_not_found"
    SERVER_ERROR = "server_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    CONNECTION_INTERRUPTED = "connection_interrupted"
    MALFORMED_RESPONSE = "malformed_response"
    ORCHESTRATION_ERROR = "orchestration_error"
    HTTP_ERROR = "http_error"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return _ERROR_LABELS[self]


_ERROR_LABELS = {
    ErrorKind.AUTH_FAILURE: "auth failure",
    ErrorKind.MODEL_NOT_FOUND: "model not found",
    ErrorKind.SERVER_ERROR: "server error",
    ErrorKind.SERVICE_UNAVAILABLE: "service unavailable",
    ErrorKind.TIMEOUT: "request timeout",
    ErrorKind.NETWORK_ERROR: "network error",
    ErrorKind.CONNECTION_INTERRUPTED: "connection interrupted",
    ErrorKind.MALFORMED_RESPONSE: "malformed response",
    ErrorKind.ORCHESTRATION_ERROR: "orchestration error",
    ErrorKind.HTTP_ERROR: "http error",
    ErrorKind.UNKNOWN: "unknown",
}


class ProbeRecord(StandardBaseModel):
    """
    Flat per-probe record used for aggregation.

    Times are milliseconds. ``success`` is None when unknown, which the
    metrics engine counts as a success.
    """

    model: str
    mode: ProbeMode
    success: bool | None = None
    response_time: int | None = None
    ttfb: int | None = None
    token_count: int = 0
    total_time: int | None = None
    tokens_per_second: float = 0.0
    error: str | None = None
    started_at: float | None = None
    ended_at: float | None = None


class _BaseOutcome(FrozenBaseModel, ABC):
    model: str = Field(description="Model identifier that was requested.")
    mode: ProbeMode = Field(description="Whether the probe streamed.")
    message: str = Field(description="Human readable summary of the outcome.")
    response_time_ms: int | None = Field(
        default=None, description="Request start to response completion."
    )
    timestamp: float = Field(
        default_factory=time.time, description="When the outcome was classified."
    )

    @property
    @abstractmethod
    def progress_kind(self) -> str:
        """
        :return: Progress event kind reported for this outcome
        """
        ...

    @abstractmethod
    def to_record(self) -> ProbeRecord:
        """
        :return: The outcome flattened for the metrics engine
        """
        ...


class _ResponseOutcome(_BaseOutcome):
    ttfb_ms: int | None = None
    token_count: int = 0
    tokens_per_second: float = 0.0
    content_length: int | None = Field(
        default=None, description="Characters of content for non-streamed replies."
    )
    has_o1_reason: bool = Field(
        default=False,
        description="Provider reported reasoning tokens for an o1- model.",
    )
    usage: dict[str, Any] | None = None
    stream_metrics: StreamMetrics | None = None

    def to_record(self) -> ProbeRecord:
        return ProbeRecord(
            model=self.model,
            mode=self.mode,
            success=self.status == "valid",
            response_time=self.response_time_ms,
            ttfb=self.ttfb_ms,
            token_count=self.token_count,
            total_time=(
                self.stream_metrics.total_time_ms
                if self.stream_metrics
                else self.response_time_ms
            ),
            tokens_per_second=self.tokens_per_second,
            ended_at=self.timestamp,
        )


class ValidOutcome(_ResponseOutcome):
    status: Literal["valid"] = "valid"

    @property
    def progress_kind(self) -> str:
        return "streamValid" if self.mode == "streaming" else "valid"


class InconsistentOutcome(_ResponseOutcome):
    status: Literal["inconsistent"] = "inconsistent"
    returned_model: str = Field(description="Model identifier the endpoint reported.")

    @property
    def progress_kind(self) -> str:
        return "inconsistent"

    def to_record(self) -> ProbeRecord:
        return super().to_record().model_copy(
            update={"error": f"returned model {self.returned_model}"}
        )


class InvalidOutcome(_BaseOutcome):
    status: Literal["invalid"] = "invalid"
    error_kind: ErrorKind
    error_label: str = Field(description="Short label, e.g. 'auth failure'.")
    http_status: int | None = None
    response_text: str = Field(
        default="", description="'[label] detail' line for display."
    )

    @property
    def progress_kind(self) -> str:
        return "streamInvalid" if self.mode == "streaming" else "invalid"

    def to_record(self) -> ProbeRecord:
        return ProbeRecord(
            model=self.model,
            mode=self.mode,
            success=False,
            response_time=self.response_time_ms,
            error=self.response_text or self.message,
            ended_at=self.timestamp,
        )


class StreamEmptyOutcome(_BaseOutcome):
    status: Literal["stream_empty"] = "stream_empty"
    stream_metrics: StreamMetrics
    warning: str = Field(
        default="Streaming returned no content; try non-streaming mode.",
    )

    @property
    def progress_kind(self) -> str:
        return "streamEmpty"

    def to_record(self) -> ProbeRecord:
        return ProbeRecord(
            model=self.model,
            mode=self.mode,
            success=False,
            response_time=self.response_time_ms,
            ttfb=self.stream_metrics.ttfb_ms,
            total_time=self.stream_metrics.total_time_ms,
            error=self.warning,
            ended_at=self.timestamp,
        )


ProbeOutcome = Annotated[
    Union[ValidOutcome, InconsistentOutcome, InvalidOutcome, StreamEmptyOutcome],
    Field(discriminator="status"),
]


class OrchestrationFailure(FrozenBaseModel):
    """A probe task that raised instead of returning an outcome."""

    model: str
    error: str
    timestamp: float = Field(default_factory=time.time)


class RunReport(StandardBaseModel):
    """
    Outcomes of one orchestrator run, bucketed by classification.

    Buckets keep completion order. Orchestration failures are kept apart in
    ``errors`` and are never part of a classification bucket.
    """

    mode: ProbeMode = "non-streaming"
    valid: list[ValidOutcome] = Field(default_factory=list)
    invalid: list[InvalidOutcome] = Field(default_factory=list)
    inconsistent: list[InconsistentOutcome] = Field(default_factory=list)
    stream_empty: list[StreamEmptyOutcome] = Field(default_factory=list)
    errors: list[OrchestrationFailure] = Field(default_factory=list)
    comparison: RunReport | None = Field(
        default=None, description="Non-streaming re-run when comparison is enabled."
    )
    started_at: float | None = None
    ended_at: float | None = None

    def add(self, outcome: ProbeOutcome):
        """
        Append an outcome to the bucket matching its status.

        :param outcome: Classified probe outcome
        """
        bucket = {
            "valid": self.valid,
            "invalid": self.invalid,
            "inconsistent": self.inconsistent,
            "stream_empty": self.stream_empty,
        }[outcome.status]
        bucket.append(outcome)

    @property
    def total(self) -> int:
        return (
            len(self.valid)
            + len(self.invalid)
            + len(self.inconsistent)
            + len(self.stream_empty)
        )

    def outcomes(self) -> list[ProbeOutcome]:
        return [*self.valid, *self.inconsistent, *self.stream_empty, *self.invalid]

    def records(self) -> list[ProbeRecord]:
        return [outcome.to_record() for outcome in self.outcomes()]
