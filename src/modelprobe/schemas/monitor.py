"""
Monitoring session, alert, realtime metric and comparison models.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import Field

from modelprobe.schemas.base import FrozenBaseModel, StandardBaseModel
from modelprobe.schemas.outcome import ProbeOutcome, ProbeRecord

__all__ = [
    "Alert",
    "AlertSeverity",
    "ComparisonSummary",
    "MonitorSnapshot",
    "ModelMonitorResult",
    "MonitoringSession",
    "NonStreamComparison",
    "RealtimeMetric",
    "StreamComparison",
]

AlertSeverity = Literal["info", "warning", "error", "critical"]


class MonitoringSession(StandardBaseModel):
    """
    One start/stop monitoring window and the probe records collected in it.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    config: dict[str, Any] = Field(default_factory=dict)
    started_at: float = Field(default_factory=time.time)
    probes: list[ProbeRecord] = Field(default_factory=list)
    ended_at: float | None = None
    duration_ms: int | None = None

    @property
    def active(self) -> bool:
        return self.ended_at is None

    def close(self, ended_at: float | None = None) -> MonitoringSession:
        """
        Stamp the end time and duration of the session.

        :param ended_at: Unix timestamp to use, defaults to now
        :return: The closed session
        """
        self.ended_at = ended_at if ended_at is not None else time.time()
        self.duration_ms = int((self.ended_at - self.started_at) * 1000)

        return self


class Alert(FrozenBaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: str
    message: str
    severity: AlertSeverity = "warning"
    timestamp: float = Field(default_factory=time.time)


class RealtimeMetric(FrozenBaseModel):
    model: str
    event_type: str
    payload: Any = None
    timestamp: float = Field(default_factory=time.time)


class StreamComparison(StandardBaseModel):
    average_ttfb: float = 0.0
    average_tokens_per_second: float = 0.0
    success_rate: float = 0.0


class NonStreamComparison(StandardBaseModel):
    average_response_time: float = 0.0
    success_rate: float = 0.0


class ComparisonSummary(StandardBaseModel):
    """
    Stream versus non-stream comparison for a single model.

    Success rates are fractions between 0 and 1, times are milliseconds.
    """

    model: str
    iterations: int
    stream: StreamComparison
    non_stream: NonStreamComparison
    stream_records: list[ProbeRecord] = Field(default_factory=list)
    non_stream_records: list[ProbeRecord] = Field(default_factory=list)
    recommendation: str = ""
    timestamp: float = Field(default_factory=time.time)


class MonitorSnapshot(StandardBaseModel):
    """Serializable export of a monitor's logs."""

    realtime: list[RealtimeMetric] = Field(default_factory=list)
    historical: list[MonitoringSession] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)
    version: str = "1.0.0"


class ModelMonitorResult(StandardBaseModel):
    """
    Result of monitoring one model in both modes.

    ``error`` is set instead of the outcomes when monitoring the model raised.
    """

    model: str
    stream: ProbeOutcome | None = None
    non_stream: ProbeOutcome | None = None
    comparison: ComparisonSummary | None = None
    error: str | None = None
