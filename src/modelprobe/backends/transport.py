"""
Abstract HTTP transport used by the probe orchestrator.

The orchestrator never talks to httpx directly. It sends ProbeRequests through
a ChatTransport and reads the results through two small response protocols
that httpx.Response already satisfies, so tests and alternative clients can
provide lightweight fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from modelprobe.schemas import ProbeRequest

__all__ = ["ChatResponse", "ChatStreamResponse", "ChatTransport"]


class ChatResponse(Protocol):
    """A fully read chat-completions response."""

    status_code: int

    @property
    def text(self) -> str: ...

    def json(self, **kwargs: Any) -> Any: ...


class ChatStreamResponse(Protocol):
    """An open streaming chat-completions response."""

    status_code: int

    def aiter_text(self) -> AsyncIterator[str]: ...

    async def aread(self) -> bytes: ...


class ChatTransport(ABC):
    """
    Sends chat-completion probes to an OpenAI-compatible endpoint.

    Implementations own any connection pool and must be started before use.
    """

    async def process_startup(self):  # noqa: B027
        """Acquire resources needed to send requests."""

    async def process_shutdown(self):  # noqa: B027
        """Release resources acquired in process_startup."""

    async def __aenter__(self) -> ChatTransport:
        await self.process_startup()
        return self

    async def __aexit__(self, *exc_info):
        await self.process_shutdown()

    @abstractmethod
    async def complete(self, request: ProbeRequest) -> ChatResponse:
        """
        Send a non-streaming probe and read the whole response.

        :param request: Probe to send
        :return: The response, whatever its status code
        """
        ...

    @abstractmethod
    def stream(
        self, request: ProbeRequest
    ) -> AbstractAsyncContextManager[ChatStreamResponse]:
        """
        Open a streaming probe.

        :param request: Probe to send, with ``stream=True``
        :return: Async context manager yielding the open response
        """
        ...
