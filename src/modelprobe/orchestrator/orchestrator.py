"""
Concurrency-bounded probe orchestration.

Runs one chat-completion probe per model against an OpenAI-compatible
endpoint, applies per-model timeouts, classifies each result and collects the
outcomes into a RunReport.

Models are processed in consecutive batches of ``concurrency`` probes. All
probes of a batch run concurrently on the event loop and the next batch only
starts once every probe of the current one has settled, which bounds the
number of outstanding connections. Each probe has its own timeout, so a slow
model never cancels its siblings.

Progress events, one per probe as it completes:

- ``valid`` / ``streamValid``: a ValidOutcome
- ``inconsistent``: an InconsistentOutcome
- ``invalid`` / ``streamInvalid``: an InvalidOutcome
- ``streamEmpty``: a StreamEmptyOutcome
- ``error``: an OrchestrationFailure, the probe task itself raised
- ``comparisonStarted``: the non-streaming comparison pass is starting
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any

from loguru import logger

from modelprobe.backends import ChatTransport
from modelprobe.orchestrator.errors import (
    TIMEOUT_MESSAGE,
    classify_exception,
    classify_status,
    describe_error_body,
)
from modelprobe.orchestrator.timeouts import TimeoutPolicy
from modelprobe.schemas import (
    ErrorKind,
    InconsistentOutcome,
    InvalidOutcome,
    OrchestrationFailure,
    ProbeMode,
    ProbeOutcome,
    ProbeRequest,
    RunReport,
    StreamEmptyOutcome,
    ValidOutcome,
)
from modelprobe.stream import CharacterTokenCounter, StreamDecoder, TokenCounter
from modelprobe.utils import ALL_EVENTS, EventBus, EventCallback, safe_divide

__all__ = ["PROBE_MODES", "ProbeOrchestrator"]

PROBE_MODES: tuple[ProbeMode, ...] = ("streaming", "non-streaming")


def _batches(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _message_content(data: dict[str, Any]) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None

    return content if isinstance(content, str) else ""


def _reasoning_tokens(usage: Any) -> int:
    if not isinstance(usage, dict):
        return 0

    details = usage.get("completion_tokens_details")
    tokens = details.get("reasoning_tokens") if isinstance(details, dict) else None

    return tokens if isinstance(tokens, int) else 0


class ProbeOrchestrator:
    """
    Probes many models and classifies each result.

    Example:
    ::
        async with OpenAIHTTPTransport(target, api_key=key) as transport:
            orchestrator = ProbeOrchestrator(transport)
            report = await orchestrator.run(
                ["gpt-4o", "claude-3-sonnet"],
                prompt="Say hello",
                base_timeout_ms=10_000,
                concurrency=4,
                mode="streaming",
                progress=lambda event: print(event.kind, event.payload.model),
            )
    """

    def __init__(
        self,
        transport: ChatTransport,
        timeout_policy: TimeoutPolicy | None = None,
        token_counter: TokenCounter | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        :param transport: Started transport used to send the probes
        :param timeout_policy: Per-model timeout rules, defaults to TimeoutPolicy()
        :param token_counter: Token count strategy for non-streamed replies,
            defaults to one token per character
        :param clock: Monotonic clock in seconds, defaults to time.perf_counter
        """
        self.transport = transport
        self.timeout_policy = timeout_policy or TimeoutPolicy()
        self.token_counter = token_counter or CharacterTokenCounter()
        self.events = EventBus()
        self._clock = clock or time.perf_counter

    def subscribe(self, kind: str | None, callback: EventCallback):
        return self.events.subscribe(kind, callback)

    def stream_decoder(self) -> StreamDecoder:
        """
        :return: A decoder timed by this orchestrator's clock
        """
        return StreamDecoder(clock=self._clock)

    def build_request(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        mode: ProbeMode = "non-streaming",
    ) -> ProbeRequest:
        return ProbeRequest(
            model=model,
            prompt=prompt,
            stream=mode == "streaming",
            timeout_ms=self.timeout_policy.effective_timeout_ms(model, base_timeout_ms),
        )

    async def run(
        self,
        models: Iterable[str],
        prompt: str,
        base_timeout_ms: int,
        concurrency: int = 1,
        mode: ProbeMode = "non-streaming",
        progress: EventCallback | None = None,
        include_comparison: bool = False,
    ) -> RunReport:
        """
        Probe every model in concurrency-bounded batches.

        :param models: Model identifiers, duplicates are probed once
        :param prompt: Prompt sent to every model
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param concurrency: Probes per batch, at least 1
        :param mode: "streaming" or "non-streaming"
        :param progress: Callback receiving every progress event of the run
        :param include_comparison: For streaming runs, re-probe every model in
            non-streaming mode afterwards and attach it as report.comparison
        :return: The report with every probe classified
        :raises ValueError: If concurrency, timeout or mode are invalid
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        if base_timeout_ms <= 0:
            raise ValueError(f"base_timeout_ms must be positive, got {base_timeout_ms}")
        if mode not in PROBE_MODES:
            raise ValueError(f"mode must be one of {PROBE_MODES}, got {mode!r}")

        model_list = list(dict.fromkeys(models))
        # per-run bus so overlapping runs never see each other's progress
        run_events = EventBus()
        run_events.subscribe(
            ALL_EVENTS, lambda event: self.events.emit(event.kind, event.payload)
        )
        if progress is not None:
            run_events.subscribe(ALL_EVENTS, progress)

        report = await self._run_batches(
            model_list, prompt, base_timeout_ms, concurrency, mode, run_events
        )

        if include_comparison and mode == "streaming":
            run_events.emit(
                "comparisonStarted",
                {
                    "message": "Starting non-streaming comparison",
                    "models": model_list,
                },
            )
            report.comparison = await self._run_batches(
                model_list,
                prompt,
                base_timeout_ms,
                concurrency,
                "non-streaming",
                run_events,
            )

        return report

    async def probe(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        mode: ProbeMode = "non-streaming",
        decoder: StreamDecoder | None = None,
    ) -> ProbeOutcome:
        """
        Probe a single model outside of a run.

        :param model: Model identifier
        :param prompt: Prompt to send
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param mode: "streaming" or "non-streaming"
        :param decoder: Decoder to use for streaming, so callers can subscribe
            to its token events
        :return: The classified outcome
        """
        request = self.build_request(model, prompt, base_timeout_ms, mode)
        return await self.execute(request, decoder=decoder)

    async def execute(
        self, request: ProbeRequest, decoder: StreamDecoder | None = None
    ) -> ProbeOutcome:
        """
        Send a probe with its timeout and classify the result.

        Probe failures are always returned as an InvalidOutcome. Only
        cancellation from outside propagates.

        :param request: Probe to send
        :param decoder: Decoder to use for streaming probes
        :return: The classified outcome
        """
        started = self._clock()

        try:
            return await asyncio.wait_for(
                self._send(request, started, decoder),
                timeout=request.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.debug(
                f"Probe of {request.model} timed out after {request.timeout_ms} ms"
            )
            return self._invalid(
                request,
                ErrorKind.TIMEOUT,
                ErrorKind.TIMEOUT.label,
                TIMEOUT_MESSAGE,
                self._elapsed_ms(started),
            )
        except Exception as err:  # noqa: BLE001
            classified = classify_exception(err)
            logger.debug(
                f"Probe of {request.model} failed as {classified.label}: {err!r}"
            )
            return self._invalid(
                request,
                classified.kind,
                classified.label,
                classified.message,
                self._elapsed_ms(started),
            )

    async def _run_batches(
        self,
        models: Sequence[str],
        prompt: str,
        base_timeout_ms: int,
        concurrency: int,
        mode: ProbeMode,
        events: EventBus,
    ) -> RunReport:
        report = RunReport(mode=mode, started_at=time.time())

        for index, batch in enumerate(_batches(models, concurrency)):
            logger.debug(f"Starting probe batch {index + 1}: {', '.join(batch)}")
            await asyncio.gather(
                *(
                    self._run_guarded(
                        model, prompt, base_timeout_ms, mode, report, events
                    )
                    for model in batch
                )
            )

        report.ended_at = time.time()
        logger.info(
            f"Probed {len(models)} models: {len(report.valid)} valid, "
            f"{len(report.inconsistent)} inconsistent, {len(report.invalid)} invalid, "
            f"{len(report.stream_empty)} stream empty, {len(report.errors)} errors"
        )

        return report

    async def _run_guarded(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        mode: ProbeMode,
        report: RunReport,
        events: EventBus,
    ):
        try:
            outcome = await self.probe(model, prompt, base_timeout_ms, mode)
            report.add(outcome)
        except Exception as err:  # noqa: BLE001
            logger.exception(f"Probe task for model {model!r} failed")
            failure = OrchestrationFailure(
                model=model, error=str(err) or type(err).__name__
            )
            report.errors.append(failure)
            events.emit("error", failure)
            return

        events.emit(outcome.progress_kind, outcome)

    async def _send(
        self, request: ProbeRequest, started: float, decoder: StreamDecoder | None
    ) -> ProbeOutcome:
        if request.stream:
            return await self._send_streaming(request, decoder)

        response = await self.transport.complete(request)
        elapsed_ms = self._elapsed_ms(started)

        if not 200 <= response.status_code < 300:
            return self._http_invalid(
                request, response.status_code, response.text, elapsed_ms
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            return self._invalid(
                request,
                ErrorKind.MALFORMED_RESPONSE,
                ErrorKind.MALFORMED_RESPONSE.label,
                "The endpoint returned a response that is not a JSON object.",
                elapsed_ms,
                http_status=response.status_code,
            )

        return self._classify_completion(request, data, elapsed_ms)

    async def _send_streaming(
        self, request: ProbeRequest, decoder: StreamDecoder | None
    ) -> ProbeOutcome:
        decoder = decoder or self.stream_decoder()
        decoder.start()

        async with self.transport.stream(request) as response:
            if not 200 <= response.status_code < 300:
                body = await response.aread()
                return self._http_invalid(
                    request,
                    response.status_code,
                    body,
                    decoder.snapshot().total_time_ms,
                )

            async for chunk in response.aiter_text():
                decoder.feed(chunk)
                if decoder.completed:
                    break

        metrics = decoder.finish()

        if metrics.token_count > 0:
            return ValidOutcome(
                model=request.model,
                mode="streaming",
                message=(
                    f"{request.model} streamed {metrics.token_count} tokens at "
                    f"{metrics.tokens_per_second} tokens/s"
                ),
                response_time_ms=metrics.total_time_ms,
                ttfb_ms=metrics.ttfb_ms,
                token_count=metrics.token_count,
                tokens_per_second=metrics.tokens_per_second,
                usage=metrics.usage,
                stream_metrics=metrics,
            )

        warning = "Streaming returned no content; non-streaming may still work."
        if metrics.errors:
            warning = f"{warning} Provider reported: {metrics.errors[0]}"

        return StreamEmptyOutcome(
            model=request.model,
            mode="streaming",
            message=f"{request.model} returned an empty stream",
            response_time_ms=metrics.total_time_ms,
            stream_metrics=metrics,
            warning=warning,
        )

    def _classify_completion(
        self, request: ProbeRequest, data: dict[str, Any], elapsed_ms: int
    ) -> ProbeOutcome:
        returned_model = data.get("model") or "no returned model"
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else None
        content = _message_content(data)
        token_count = self.token_counter(content)

        fields: dict[str, Any] = {
            "model": request.model,
            "mode": "non-streaming",
            "response_time_ms": elapsed_ms,
            # a non-streamed reply arrives all at once
            "ttfb_ms": elapsed_ms,
            "token_count": token_count,
            "tokens_per_second": round(safe_divide(token_count, elapsed_ms / 1000), 2),
            "content_length": len(content),
            "has_o1_reason": (
                str(returned_model).startswith("o1-") and _reasoning_tokens(usage) > 0
            ),
            "usage": usage,
        }

        if returned_model == request.model:
            return ValidOutcome(
                message=f"{request.model} responded in {elapsed_ms} ms", **fields
            )

        return InconsistentOutcome(
            message=(
                f"Requested {request.model} but the endpoint answered as "
                f"{returned_model}"
            ),
            returned_model=str(returned_model),
            **fields,
        )

    def _http_invalid(
        self,
        request: ProbeRequest,
        status_code: int,
        body: str | bytes,
        elapsed_ms: int,
    ) -> InvalidOutcome:
        classified = classify_status(status_code)
        return self._invalid(
            request,
            classified.kind,
            classified.label,
            describe_error_body(body),
            elapsed_ms,
            http_status=status_code,
        )

    def _invalid(
        self,
        request: ProbeRequest,
        kind: ErrorKind,
        label: str,
        detail: str,
        elapsed_ms: int,
        http_status: int | None = None,
    ) -> InvalidOutcome:
        return InvalidOutcome(
            model=request.model,
            mode=request.mode,
            message=detail,
            response_time_ms=elapsed_ms,
            error_kind=kind,
            error_label=label,
            http_status=http_status,
            response_text=f"[{label}] {detail}",
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)
