"""Common test utilities for async testing and fake chat transports."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, TypeVar

import orjson
import pytest

from modelprobe.backends import ChatTransport
from modelprobe.schemas import ProbeRequest

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def async_timeout(delay: float = 10.0, hard_fail: bool = False) -> Callable[[F], F]:
    """
    Decorator to add a timeout to async test functions.

    :param delay: Timeout in seconds
    :param hard_fail: Fail instead of xfail when the timeout is hit
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=delay)
            except asyncio.TimeoutError:
                msg = f"Test {func.__name__} timed out after {delay} seconds"

                if not hard_fail:
                    pytest.xfail(msg)

                pytest.fail(msg)

        return wrapper  # type: ignore[return-value]

    return decorator


class StepClock:
    """Deterministic clock advancing by a fixed step on every read."""

    def __init__(self, step: float = 0.01):
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def sse(*payloads: Any, done: bool = True) -> str:
    """
    :return: An SSE body with one ``data:`` event per payload
    """
    events = [
        f"data: {p if isinstance(p, str) else orjson.dumps(p).decode()}\n\n"
        for p in payloads
    ]
    if done:
        events.append("data: [DONE]\n\n")

    return "".join(events)


def delta(content: str | None) -> dict[str, Any]:
    return {"choices": [{"delta": {"content": content}}]}


class FakeResponse:
    """Satisfies both response protocols of ChatTransport."""

    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        text: str | None = None,
        chunks: Sequence[str | bytes] = (),
        chunk_delay: float = 0.0,
    ):
        self.status_code = status_code
        self._body = body
        self._text = text if text is not None else (
            orjson.dumps(body).decode() if body is not None else ""
        )
        self.chunks = list(chunks)
        self.chunk_delay = chunk_delay

    @property
    def text(self) -> str:
        return self._text

    def json(self, **kwargs: Any) -> Any:
        return orjson.loads(self._text)

    async def aiter_text(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk.decode() if isinstance(chunk, bytes) else chunk

    async def aread(self) -> bytes:
        return self._text.encode()


Handler = Callable[[ProbeRequest], Any]


class FakeTransport(ChatTransport):
    """
    Transport answering every probe through a handler.

    The handler receives the ProbeRequest and returns a FakeResponse, an
    awaitable of one, or raises to simulate transport failures.
    """

    def __init__(self, handler: Handler):
        self.handler = handler
        self.requests: list[ProbeRequest] = []
        self.active = 0
        self.max_active = 0

    async def _respond(self, request: ProbeRequest) -> FakeResponse:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            result = self.handler(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self.active -= 1

    async def complete(self, request: ProbeRequest) -> FakeResponse:
        return await self._respond(request)

    @asynccontextmanager
    async def stream(self, request: ProbeRequest) -> AsyncIterator[FakeResponse]:
        yield await self._respond(request)


def completion(model: str, content: str = "Hello there", usage: Any = None) -> dict:
    body: dict[str, Any] = {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
    }
    if usage is not None:
        body["usage"] = usage

    return body
