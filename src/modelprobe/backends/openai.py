"""
OpenAI HTTP transport implementation for modelprobe.

Sends chat-completion probes to OpenAI-compatible servers over httpx and also
exposes the account-level endpoints probing tools read alongside them: the
model catalog and billing quota. Handles target normalization, bearer token
authentication and connection pooling.
"""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import Field

from modelprobe.backends.transport import ChatTransport
from modelprobe.schemas import ProbeRequest, StandardBaseModel
from modelprobe.settings import settings

__all__ = ["DEFAULT_API_PATHS", "OpenAIHTTPTransport", "QuotaInfo"]


DEFAULT_API_PATHS = {
    "/v1/models": "v1/models",
    "/v1/chat/completions": "v1/chat/completions",
    "/dashboard/billing/subscription": "dashboard/billing/subscription",
    "/dashboard/billing/usage": "dashboard/billing/usage",
}


class QuotaInfo(StandardBaseModel):
    hard_limit_usd: float | None = Field(
        default=None, description="Account hard limit, None if not reported."
    )
    used_amount: float = Field(
        default=0.0, description="Usage this month in dollars."
    )


class OpenAIHTTPTransport(ChatTransport):
    """
    HTTP transport for OpenAI-compatible servers.

    Example:
    ::
        async with OpenAIHTTPTransport(
            target="https://api.example.com/v1", api_key="sk-..."
        ) as transport:
            models = await transport.available_models()
            response = await transport.complete(
                ProbeRequest(model=models[0], prompt="hi", timeout_ms=30000)
            )
    """

    def __init__(
        self,
        target: str,
        api_key: str | None = None,
        api_routes: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        timeout_connect: float | None = None,
        http2: bool | None = None,
        follow_redirects: bool | None = None,
        verify: bool | None = None,
    ):
        """
        Initialize the transport with server configuration.

        :param target: Base URL of the server, with or without a trailing /v1
        :param api_key: API key sent as a Bearer token
        :param api_routes: Overrides for the default API paths
        :param headers: Extra headers sent with every request
        :param timeout: Read timeout in seconds, probe timeouts are applied
            separately by the orchestrator
        :param timeout_connect: Connect timeout in seconds
        :param http2: Enable HTTP/2 support
        :param follow_redirects: Follow HTTP redirects automatically
        :param verify: Enable SSL certificate verification
        """
        self.target = target.rstrip("/").removesuffix("/v1")
        self.api_key = api_key
        self.api_routes = {**DEFAULT_API_PATHS, **(api_routes or {})}
        self.headers = headers
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.timeout_connect = (
            timeout_connect
            if timeout_connect is not None
            else settings.request_connect_timeout
        )
        self.http2 = http2 if http2 is not None else settings.request_http2
        self.follow_redirects = (
            follow_redirects
            if follow_redirects is not None
            else settings.request_follow_redirects
        )
        self.verify = verify if verify is not None else settings.request_verify

        self._async_client: httpx.AsyncClient | None = None

    @property
    def info(self) -> dict[str, Any]:
        """
        :return: Transport configuration, excluding the API key
        """
        return {
            "target": self.target,
            "timeout": self.timeout,
            "timeout_connect": self.timeout_connect,
            "http2": self.http2,
            "follow_redirects": self.follow_redirects,
            "verify": self.verify,
            "api_routes": self.api_routes,
        }

    @property
    def started(self) -> bool:
        return self._async_client is not None

    async def process_startup(self):
        """
        Create the HTTP client.

        :raises RuntimeError: If the transport is already started
        """
        if self._async_client is not None:
            raise RuntimeError("Transport already started up.")

        self._async_client = httpx.AsyncClient(
            http2=self.http2,
            timeout=httpx.Timeout(
                self.timeout_connect, read=self.timeout, connect=self.timeout_connect
            ),
            follow_redirects=self.follow_redirects,
            verify=self.verify,
            # probe concurrency is bounded by the orchestrator
            limits=httpx.Limits(
                max_connections=None,
                max_keepalive_connections=None,
                keepalive_expiry=5.0,
            ),
        )

    async def process_shutdown(self):
        """
        Close the HTTP client.

        :raises RuntimeError: If the transport was not started
        """
        if self._async_client is None:
            raise RuntimeError("Transport not started up.")

        await self._async_client.aclose()
        self._async_client = None

    async def complete(self, request: ProbeRequest) -> httpx.Response:
        client = self._client()
        return await client.post(
            self.url("/v1/chat/completions"),
            headers=self._build_headers(),
            json=request.chat_body(),
        )

    @asynccontextmanager
    async def stream(self, request: ProbeRequest) -> AsyncIterator[httpx.Response]:
        client = self._client()
        async with client.stream(
            "POST",
            self.url("/v1/chat/completions"),
            headers=self._build_headers(),
            json=request.chat_body(),
        ) as response:
            yield response

    async def available_models(self) -> list[str]:
        """
        Get the model catalog from the target server.

        :return: Model identifiers in the order the server listed them
        :raises httpx.HTTPStatusError: If the models endpoint returns an error
        :raises RuntimeError: If the transport is not started
        """
        response = await self._client().get(
            self.url("/v1/models"), headers=self._build_headers()
        )
        response.raise_for_status()

        return [item["id"] for item in response.json().get("data", [])]

    async def quota(self, today: datetime.date | None = None) -> QuotaInfo:
        """
        Get the account's hard limit and this month's usage.

        :param today: Date closing the usage window, defaults to today
        :return: Quota information
        :raises httpx.HTTPStatusError: If either billing endpoint returns an error
        :raises RuntimeError: If the transport is not started
        """
        client = self._client()
        today = today or datetime.date.today()
        subscription, usage = await asyncio.gather(
            client.get(
                self.url("/dashboard/billing/subscription"),
                headers=self._build_headers(),
            ),
            client.get(
                self.url("/dashboard/billing/usage"),
                headers=self._build_headers(),
                params={
                    "start_date": today.replace(day=1).isoformat(),
                    "end_date": today.isoformat(),
                },
            ),
        )
        subscription.raise_for_status()
        usage.raise_for_status()

        return QuotaInfo(
            hard_limit_usd=subscription.json().get("hard_limit_usd") or None,
            # usage is reported in cents
            used_amount=(usage.json().get("total_usage") or 0) / 100,
        )

    def url(self, route: str) -> str:
        return f"{self.target}/{self.api_routes[route]}"

    def _client(self) -> httpx.AsyncClient:
        if self._async_client is None:
            raise RuntimeError("Transport not started up.")

        return self._async_client

    def _build_headers(self) -> dict[str, str]:
        """
        Build request headers with bearer token authentication.

        User supplied headers take precedence over the bearer token.
        """
        headers: dict[str, str] = {"Content-Type": "application/json"}

        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        if self.headers:
            headers = {**headers, **self.headers}

        return headers
