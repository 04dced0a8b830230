"""
Unit tests for the OpenAI HTTP transport.
"""

from __future__ import annotations

import datetime

import httpx
import orjson
import pytest
from pytest_httpx import HTTPXMock, IteratorStream

from modelprobe.backends import ChatTransport, OpenAIHTTPTransport, QuotaInfo
from modelprobe.orchestrator import ProbeOrchestrator
from modelprobe.schemas import ErrorKind, ProbeRequest
from tests.unit.testing_utils import async_timeout, completion, delta, sse

CHAT_URL = "http://test/v1/chat/completions"


class TestOpenAIHTTPTransport:
    @pytest.mark.smoke
    def test_class_signatures(self):
        assert issubclass(OpenAIHTTPTransport, ChatTransport)

    @pytest.mark.smoke
    @pytest.mark.parametrize(
        "target",
        ["http://test", "http://test/", "http://test/v1", "http://test/v1/"],
    )
    def test_target_normalization(self, target):
        transport = OpenAIHTTPTransport(target=target)

        assert transport.target == "http://test"
        assert transport.url("/v1/models") == "http://test/v1/models"

    @pytest.mark.sanity
    def test_info_excludes_api_key(self):
        transport = OpenAIHTTPTransport(
            target="http://test", api_key="sk-secret", timeout=10, http2=False
        )

        assert transport.info["timeout"] == 10
        assert transport.info["http2"] is False
        assert "sk-secret" not in str(transport.info)

    @pytest.mark.sanity
    def test_route_overrides(self):
        transport = OpenAIHTTPTransport(
            target="http://test", api_routes={"/v1/models": "models"}
        )

        assert transport.url("/v1/models") == "http://test/models"
        assert transport.url("/v1/chat/completions") == CHAT_URL

    @pytest.mark.sanity
    def test_headers(self):
        transport = OpenAIHTTPTransport(
            target="http://test", api_key="sk-1", headers={"X-Org": "team"}
        )

        assert transport._build_headers() == {
            "Content-Type": "application/json",
            "Authorization": "Bearer sk-1",
            "X-Org": "team",
        }
        anonymous = OpenAIHTTPTransport("http://test")
        assert "Authorization" not in anonymous._build_headers()

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_startup_shutdown(self):
        transport = OpenAIHTTPTransport(target="http://test")
        await transport.process_startup()
        assert transport.started

        with pytest.raises(RuntimeError, match="already started"):
            await transport.process_startup()

        await transport.process_shutdown()
        assert not transport.started

        with pytest.raises(RuntimeError, match="not started"):
            await transport.process_shutdown()

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_requests_require_startup(self):
        transport = OpenAIHTTPTransport(target="http://test")

        with pytest.raises(RuntimeError, match="not started"):
            await transport.available_models()

    @pytest.mark.smoke
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_complete(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=CHAT_URL, json=completion("gpt-4"))

        async with OpenAIHTTPTransport("http://test", api_key="sk-1") as transport:
            response = await transport.complete(
                ProbeRequest(model="gpt-4", prompt="hi", timeout_ms=1000)
            )

        assert response.status_code == 200
        sent = httpx_mock.get_request()
        assert sent.headers["Authorization"] == "Bearer sk-1"
        assert orjson.loads(sent.content) == {
            "model": "gpt-4",
            "messages": [{"role": "user", "content": "hi"}],
            "seed": 331,
        }

    @pytest.mark.smoke
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_stream(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url=CHAT_URL,
            stream=IteratorStream(
                [
                    b'data: {"choices": [{"delta": {"content": "Hello"}}]}\n\n',
                    b"data: [DONE]\n\n",
                ]
            ),
        )
        request = ProbeRequest(
            model="claude-3-sonnet", prompt="hi", timeout_ms=1000, stream=True
        )

        async with OpenAIHTTPTransport("http://test") as transport:
            async with transport.stream(request) as response:
                text = "".join([chunk async for chunk in response.aiter_text()])

        assert "Hello" in text
        assert orjson.loads(httpx_mock.get_request().content)["stream"] is True

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_available_models(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url="http://test/v1/models",
            json={"data": [{"id": "test-model1"}, {"id": "test-model2"}]},
        )

        async with OpenAIHTTPTransport(target="http://test/v1") as transport:
            models = await transport.available_models()

        assert models == ["test-model1", "test-model2"]

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_available_models_error(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url="http://test/v1/models", status_code=401)

        async with OpenAIHTTPTransport(target="http://test") as transport:
            with pytest.raises(httpx.HTTPStatusError):
                await transport.available_models()

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_quota(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url="http://test/dashboard/billing/subscription",
            json={"hard_limit_usd": 120.0},
        )
        httpx_mock.add_response(
            url=(
                "http://test/dashboard/billing/usage"
                "?start_date=2024-03-01&end_date=2024-03-15"
            ),
            json={"total_usage": 1234},
        )

        async with OpenAIHTTPTransport(target="http://test") as transport:
            info = await transport.quota(today=datetime.date(2024, 3, 15))

        assert info == QuotaInfo(hard_limit_usd=120.0, used_amount=12.34)

    @pytest.mark.sanity
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_quota_without_limit(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url="http://test/dashboard/billing/subscription", json={}
        )
        httpx_mock.add_response(
            url=(
                "http://test/dashboard/billing/usage"
                "?start_date=2024-03-01&end_date=2024-03-01"
            ),
            json={},
        )

        async with OpenAIHTTPTransport(target="http://test") as transport:
            info = await transport.quota(today=datetime.date(2024, 3, 1))

        assert info.hard_limit_usd is None
        assert info.used_amount == 0


class TestProbeOverHTTP:
    @pytest.mark.regression
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_streaming_probe(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url=CHAT_URL,
            stream=IteratorStream([sse(delta("Hel"), delta("lo")).encode()]),
        )

        async with OpenAIHTTPTransport(target="http://test") as transport:
            outcome = await ProbeOrchestrator(transport).probe(
                "claude-3-sonnet", "hi", 10_000, mode="streaming"
            )

        assert outcome.status == "valid"
        assert outcome.token_count == 2
        assert outcome.stream_metrics.done_received

    @pytest.mark.regression
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_unauthorized_probe(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url=CHAT_URL,
            status_code=401,
            json={"error": {"message": "Incorrect API key provided"}},
        )

        async with OpenAIHTTPTransport(target="http://test") as transport:
            outcome = await ProbeOrchestrator(transport).probe("gpt-4", "hi", 10_000)

        assert outcome.status == "invalid"
        assert outcome.error_kind == ErrorKind.AUTH_FAILURE
        assert outcome.http_status == 401
        assert outcome.response_text == "[auth failure] Incorrect API key provided"

    @pytest.mark.regression
    @pytest.mark.asyncio
    @async_timeout(10.0)
    async def test_connection_refused_probe(self, httpx_mock: HTTPXMock):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        async with OpenAIHTTPTransport(target="http://test") as transport:
            outcome = await ProbeOrchestrator(transport).probe("gpt-4", "hi", 10_000)

        assert outcome.status == "invalid"
        assert outcome.error_kind == ErrorKind.NETWORK_ERROR
