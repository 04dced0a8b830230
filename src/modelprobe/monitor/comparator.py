"""
Streaming versus non-streaming comparison for a single model.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from loguru import logger

from modelprobe.orchestrator import ProbeOrchestrator
from modelprobe.schemas import (
    ComparisonSummary,
    NonStreamComparison,
    ProbeRecord,
    StreamComparison,
)
from modelprobe.utils import safe_divide

__all__ = [
    "PerformanceComparator",
    "calculate_comparison",
    "generate_recommendation",
]

EXCELLENT_TOKENS_PER_SECOND = 50
GOOD_TOKENS_PER_SECOND = 20


def _mean(values: Sequence[float]) -> float:
    return safe_divide(sum(values), len(values))


def _success_fraction(records: Sequence[ProbeRecord]) -> float:
    return safe_divide(sum(1 for record in records if record.success), len(records))


def calculate_comparison(
    stream_records: Sequence[ProbeRecord], non_stream_records: Sequence[ProbeRecord]
) -> tuple[StreamComparison, NonStreamComparison]:
    """
    Average the iterations of a comparison.

    Missing or zero values are left out of each average.

    :param stream_records: Records of the streaming probes
    :param non_stream_records: Records of the non-streaming probes
    :return: The streaming and non-streaming aggregates, success rates as
        fractions between 0 and 1
    """
    stream = StreamComparison(
        average_ttfb=_mean([rec.ttfb for rec in stream_records if rec.ttfb]),
        average_tokens_per_second=_mean(
            [rec.tokens_per_second for rec in stream_records if rec.tokens_per_second]
        ),
        success_rate=_success_fraction(stream_records),
    )
    non_stream = NonStreamComparison(
        average_response_time=_mean(
            [rec.response_time for rec in non_stream_records if rec.response_time]
        ),
        success_rate=_success_fraction(non_stream_records),
    )

    return stream, non_stream


def generate_recommendation(
    stream: StreamComparison, non_stream: NonStreamComparison
) -> str:
    """
    Describe which mode suits the model better.

    :param stream: Streaming aggregate
    :param non_stream: Non-streaming aggregate
    :return: Three sentences covering latency, token rate and reliability
    """
    if stream.average_ttfb < non_stream.average_response_time:
        latency = "Streaming answers first; suited to interactive use."
    else:
        latency = "Non-streaming completes faster; suited to batch processing."

    if stream.average_tokens_per_second > EXCELLENT_TOKENS_PER_SECOND:
        speed = "Streaming token rate is excellent."
    elif stream.average_tokens_per_second > GOOD_TOKENS_PER_SECOND:
        speed = "Streaming token rate is good."
    else:
        speed = "Streaming token rate is slow and could be improved."

    if stream.success_rate < non_stream.success_rate:
        reliability = "Non-streaming succeeds more often and is more stable."
    else:
        reliability = "Streaming succeeds at least as often; streaming is recommended."

    return f"{latency} {speed} {reliability}"


class PerformanceComparator:
    """
    Alternates streaming and non-streaming probes of one model.

    Each iteration runs a streaming probe, waits ``delay_s / 2`` seconds and
    then runs a non-streaming probe. Iterations after the first are preceded
    by a ``delay_s`` pause so the endpoint is not hit back to back.
    """

    def __init__(self, orchestrator: ProbeOrchestrator):
        self.orchestrator = orchestrator

    async def compare(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        iterations: int = 1,
        delay_s: float = 1.0,
    ) -> ComparisonSummary:
        """
        :param model: Model identifier
        :param prompt: Prompt sent in every probe
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param iterations: Number of stream/non-stream pairs, at least 1
        :param delay_s: Pause between iterations in seconds
        :return: Averages, per-probe records and a recommendation
        :raises ValueError: If iterations is below 1 or delay_s is negative
        """
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")
        if delay_s < 0:
            raise ValueError(f"delay_s must not be negative, got {delay_s}")

        stream_records: list[ProbeRecord] = []
        non_stream_records: list[ProbeRecord] = []

        for iteration in range(iterations):
            if iteration > 0:
                await asyncio.sleep(delay_s)

            outcome = await self.orchestrator.probe(
                model, prompt, base_timeout_ms, mode="streaming"
            )
            stream_records.append(outcome.to_record())

            await asyncio.sleep(delay_s / 2)

            outcome = await self.orchestrator.probe(
                model, prompt, base_timeout_ms, mode="non-streaming"
            )
            non_stream_records.append(outcome.to_record())

        stream, non_stream = calculate_comparison(stream_records, non_stream_records)
        logger.debug(
            f"Compared {model} over {iterations} iterations: "
            f"stream ttfb {stream.average_ttfb:.0f} ms, "
            f"non-stream {non_stream.average_response_time:.0f} ms"
        )

        return ComparisonSummary(
            model=model,
            iterations=iterations,
            stream=stream,
            non_stream=non_stream,
            stream_records=stream_records,
            non_stream_records=non_stream_records,
            recommendation=generate_recommendation(stream, non_stream),
        )
