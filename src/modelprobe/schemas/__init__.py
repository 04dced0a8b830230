from .base import FrozenBaseModel, StandardBaseModel
from .monitor import (
    Alert,
    AlertSeverity,
    ComparisonSummary,
    ModelMonitorResult,
    MonitoringSession,
    MonitorSnapshot,
    NonStreamComparison,
    RealtimeMetric,
    StreamComparison,
)
from .outcome import (
    ErrorKind,
    InconsistentOutcome,
    InvalidOutcome,
    OrchestrationFailure,
    ProbeOutcome,
    ProbeRecord,
    RunReport,
    StreamEmptyOutcome,
    ValidOutcome,
)
from .request import DETERMINISTIC_SEED, SEEDED_MODEL_PATTERN, ProbeMode, ProbeRequest
from .stream import StreamMetrics, TokenEvent

__all__ = [
    "DETERMINISTIC_SEED",
    "SEEDED_MODEL_PATTERN",
    "Alert",
    "AlertSeverity",
    "ComparisonSummary",
    "ErrorKind",
    "FrozenBaseModel",
    "InconsistentOutcome",
    "InvalidOutcome",
    "ModelMonitorResult",
    "MonitorSnapshot",
    "MonitoringSession",
    "NonStreamComparison",
    "OrchestrationFailure",
    "ProbeMode",
    "ProbeOutcome",
    "ProbeRecord",
    "ProbeRequest",
    "RealtimeMetric",
    "RunReport",
    "StandardBaseModel",
    "StreamComparison",
    "StreamEmptyOutcome",
    "StreamMetrics",
    "TokenEvent",
    "ValidOutcome",
]
