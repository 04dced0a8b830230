"""
Client for external API-key checking proxies.

The proxies are opaque services: each request is a POST with a ``type``
discriminator and type-specific fields, and the JSON reply is handed back
unmodified.
"""

from __future__ import annotations

from typing import Any, Literal

import httpx

from modelprobe.settings import settings

__all__ = ["KeyCheckClient", "KeyCheckType"]

KeyCheckType = Literal["refreshTokens", "sessionKeys", "geminiAPI"]


class KeyCheckClient:
    """
    Posts credential batches to a key checking proxy.

    Example:
    ::
        client = KeyCheckClient("https://checker.example.com/api")
        result = await client.check_refresh_tokens(["rt-1", "rt-2"])
    """

    def __init__(
        self,
        address: str,
        timeout: float | None = None,
    ):
        """
        :param address: Full URL of the proxy
        :param timeout: Request timeout in seconds
        """
        self.address = address
        self.timeout = timeout if timeout is not None else settings.request_timeout

    async def check(self, type_: KeyCheckType, **payload: Any) -> Any:
        """
        Send one check request.

        :param type_: Proxy discriminator
        :param payload: Type-specific fields
        :return: The proxy's decoded JSON reply
        :raises httpx.HTTPError: If the request fails
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.address,
                headers={"Content-Type": "application/json"},
                json={"type": type_, **payload},
            )

        return response.json()

    async def check_refresh_tokens(self, tokens: list[str]) -> Any:
        return await self.check("refreshTokens", tokens=tokens)

    async def check_session_keys(
        self, tokens: list[str], max_attempts: int, requests_per_second: float
    ) -> Any:
        return await self.check(
            "sessionKeys",
            tokens=tokens,
            maxAttempts=max_attempts,
            requestsPerSecond=requests_per_second,
        )

    async def check_gemini_keys(
        self,
        tokens: list[str],
        model: str,
        rate_limit: float,
        prompt: str,
        user: str,
    ) -> Any:
        return await self.check(
            "geminiAPI",
            tokens=tokens,
            model=model,
            rateLimit=rate_limit,
            prompt=prompt,
            user=user,
        )
