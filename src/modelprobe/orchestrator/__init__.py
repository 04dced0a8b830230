from .errors import (
    EXCEPTION_RULES,
    HTTP_STATUS_KINDS,
    ClassifiedError,
    ExceptionRule,
    classify_exception,
    classify_status,
    describe_error_body,
)
from .orchestrator import PROBE_MODES, ProbeOrchestrator
from .timeouts import DEFAULT_TIMEOUT_RULES, TimeoutPolicy, TimeoutRule

__all__ = [
    "DEFAULT_TIMEOUT_RULES",
    "EXCEPTION_RULES",
    "HTTP_STATUS_KINDS",
    "PROBE_MODES",
    "ClassifiedError",
    "ExceptionRule",
    "ProbeOrchestrator",
    "TimeoutPolicy",
    "TimeoutRule",
    "classify_exception",
    "classify_status",
    "describe_error_body",
]
