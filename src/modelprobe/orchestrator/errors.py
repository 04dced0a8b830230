"""
Classification of failed probes into ErrorKinds.

HTTP failures are classified by status code. Transport and runtime
exceptions go through an ordered rule table: exception types are checked
first across all rules, then message fragments, and anything left is
``unknown``. The resulting messages are fixed text so reports do not depend
on how a particular library words its exceptions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import httpx
import orjson

from modelprobe.schemas import ErrorKind

__all__ = [
    "EXCEPTION_RULES",
    "HTTP_STATUS_KINDS",
    "ClassifiedError",
    "ExceptionRule",
    "classify_exception",
    "classify_status",
    "describe_error_body",
]

HTTP_STATUS_KINDS: dict[int, ErrorKind] = {
    401: ErrorKind.AUTH_FAILURE,
    404: ErrorKind.MODEL_NOT_FOUND,
    500: ErrorKind.SERVER_ERROR,
    503: ErrorKind.SERVICE_UNAVAILABLE,
    524: ErrorKind.TIMEOUT,
}

TIMEOUT_MESSAGE = (
    "Request timed out; increase the timeout or check the network connection."
)
UNKNOWN_MESSAGE = "Unexpected error while probing the model."


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    label: str
    message: str


@dataclass(frozen=True)
class ExceptionRule:
    kind: ErrorKind
    message: str
    types: tuple[type[BaseException], ...] = ()
    fragments: tuple[str, ...] = ()

    def matches_type(self, exc: BaseException) -> bool:
        return isinstance(exc, self.types)

    def matches_message(self, exc: BaseException) -> bool:
        text = str(exc).lower()
        return any(fragment.lower() in text for fragment in self.fragments)


EXCEPTION_RULES: tuple[ExceptionRule, ...] = (
    ExceptionRule(
        ErrorKind.TIMEOUT,
        TIMEOUT_MESSAGE,
        types=(asyncio.TimeoutError, httpx.TimeoutException),
        fragments=("timeout", "timed out"),
    ),
    ExceptionRule(
        ErrorKind.CONNECTION_INTERRUPTED,
        "Connection interrupted, possibly a server or network problem.",
        types=(
            httpx.RemoteProtocolError,
            httpx.ReadError,
            asyncio.IncompleteReadError,
            ConnectionResetError,
            ConnectionAbortedError,
        ),
        fragments=("IncompleteRead", "Connection broken"),
    ),
    ExceptionRule(
        ErrorKind.NETWORK_ERROR,
        "Network connection failed; check the network connection or API address.",
        types=(httpx.NetworkError, ConnectionError),
        fragments=("Failed to fetch", "Connection refused"),
    ),
)


def classify_status(status_code: int) -> ClassifiedError:
    """
    :param status_code: Non-2xx HTTP status code
    :return: Classification, ``HTTP <code>`` for unmapped codes
    """
    if kind := HTTP_STATUS_KINDS.get(status_code):
        return ClassifiedError(kind, kind.label, kind.label)

    label = f"HTTP {status_code}"
    return ClassifiedError(ErrorKind.HTTP_ERROR, label, label)


def classify_exception(
    exc: BaseException, rules: Sequence[ExceptionRule] = EXCEPTION_RULES
) -> ClassifiedError:
    """
    :param exc: Exception raised while sending or reading a probe
    :param rules: Ordered rules, types are matched before message fragments
    :return: Classification with a fixed human readable message
    """
    rule = next((rule for rule in rules if rule.matches_type(exc)), None) or next(
        (rule for rule in rules if rule.matches_message(exc)), None
    )
    if rule is None:
        return ClassifiedError(
            ErrorKind.UNKNOWN, ErrorKind.UNKNOWN.label, UNKNOWN_MESSAGE
        )

    return ClassifiedError(rule.kind, rule.kind.label, rule.message)


def describe_error_body(body: str | bytes) -> str:
    """
    Extract a readable detail from an error response body.

    :param body: Raw response body
    :return: ``error.message`` when present, else the JSON or text body
    """
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body

    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        return text.strip() or "Unable to read the response body."

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error

    return orjson.dumps(data).decode()
