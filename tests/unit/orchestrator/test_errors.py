from __future__ import annotations

import asyncio

import httpx
import pytest

from modelprobe.orchestrator import (
    classify_exception,
    classify_status,
    describe_error_body,
)
from modelprobe.schemas import ErrorKind


class TestClassifyStatus:
    @pytest.mark.smoke
    @pytest.mark.parametrize(
        ("status", "kind", "label"),
        [
            (401, ErrorKind.AUTH_FAILURE, "auth failure"),
            (404, ErrorKind.MODEL_NOT_FOUND, "model not found"),
            (500, ErrorKind.SERVER_ERROR, "server error"),
            (503, ErrorKind.SERVICE_UNAVAILABLE, "service unavailable"),
            (524, ErrorKind.TIMEOUT, "request timeout"),
            (429, ErrorKind.HTTP_ERROR, "HTTP 429"),
            (502, ErrorKind.HTTP_ERROR, "HTTP 502"),
        ],
    )
    def test_status_codes(self, status, kind, label):
        classified = classify_status(status)

        assert classified.kind == kind
        assert classified.label == label


class TestClassifyException:
    @pytest.mark.smoke
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
            (httpx.ReadTimeout("read"), ErrorKind.TIMEOUT),
            (
                httpx.RemoteProtocolError("peer closed"),
                ErrorKind.CONNECTION_INTERRUPTED,
            ),
            (ConnectionResetError(), ErrorKind.CONNECTION_INTERRUPTED),
            (httpx.ConnectError("refused"), ErrorKind.NETWORK_ERROR),
            (ConnectionRefusedError(), ErrorKind.NETWORK_ERROR),
            (
                RuntimeError("IncompleteRead(0 bytes read)"),
                ErrorKind.CONNECTION_INTERRUPTED,
            ),
            (RuntimeError("Failed to fetch"), ErrorKind.NETWORK_ERROR),
            (RuntimeError("operation timed out"), ErrorKind.TIMEOUT),
            (RuntimeError("something else"), ErrorKind.UNKNOWN),
        ],
    )
    def test_exceptions(self, exc, kind):
        classified = classify_exception(exc)

        assert classified.kind == kind
        assert classified.label == kind.label
        assert classified.message

    @pytest.mark.sanity
    def test_type_match_before_message_match(self):
        # message says timeout, type says network
        classified = classify_exception(httpx.ConnectError("connect timeout"))
        assert classified.kind == ErrorKind.NETWORK_ERROR


class TestDescribeErrorBody:
    @pytest.mark.smoke
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ('{"error": {"message": "Invalid API key"}}', "Invalid API key"),
            (b'{"error": {"message": "No such model"}}', "No such model"),
            ('{"error": "overloaded"}', "overloaded"),
            ('{"detail": "bad"}', '{"detail":"bad"}'),
            ("Bad Gateway\n", "Bad Gateway"),
            ("", "Unable to read the response body."),
        ],
    )
    def test_bodies(self, body, expected):
        assert describe_error_body(body) == expected
