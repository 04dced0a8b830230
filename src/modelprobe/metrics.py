"""
Aggregate statistics over completed probe records.

Pure functions that read ``response_time``, ``success``, ``token_count``,
``total_time`` and ``ttfb`` (milliseconds) from ProbeRecord instances or from
plain mappings with the same keys. Percentiles use the nearest-rank element at
``floor(n * q)`` of the sorted values rather than interpolation, so results
match dashboards built on the same convention.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import Field

from modelprobe.schemas import StandardBaseModel
from modelprobe.utils import round_half_up, safe_divide, safe_getattr

__all__ = [
    "LatencyDistribution",
    "PerformanceSummary",
    "average_response_time",
    "latency_distribution",
    "performance_score",
    "success_rate",
    "summarize",
    "tokens_per_second",
]

# (threshold, penalty) pairs, checked in order, first match wins
RESPONSE_TIME_PENALTIES: tuple[tuple[float, float], ...] = (
    (5000, 20),
    (3000, 15),
    (1000, 10),
    (500, 5),
)
THROUGHPUT_PENALTIES: tuple[tuple[float, float], ...] = (
    (10, 30),
    (20, 20),
    (50, 10),
    (100, 5),
)
SUCCESS_RATE_WEIGHT = 0.3


class LatencyDistribution(StandardBaseModel):
    min: float = 0
    max: float = 0
    median: float = 0
    p95: float = 0
    p99: float = 0


class PerformanceSummary(StandardBaseModel):
    count: int = 0
    average_response_time: float = Field(default=0.0, description="Milliseconds.")
    success_rate: float = Field(default=0.0, description="Percentage, 0 to 100.")
    tokens_per_second: float = 0.0
    latency: LatencyDistribution = Field(default_factory=LatencyDistribution)
    score: int = 0


def _number(record: Any, field: str) -> float:
    value = safe_getattr(record, field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0

    return value


def average_response_time(records: Iterable[Any]) -> float:
    """
    Mean response time over records with a positive ``response_time``.

    :param records: Probe records
    :return: Mean in milliseconds rounded to 2 decimals, 0 if none qualify
    """
    times = [
        value
        for record in records
        if (value := _number(record, "response_time")) > 0
    ]

    return round(safe_divide(sum(times), len(times)), 2)


def success_rate(records: Iterable[Any]) -> float:
    """
    Percentage of records that did not explicitly fail.

    A record without a ``success`` value counts as a success; only
    ``success=False`` counts as a failure.

    :param records: Probe records
    :return: Percentage rounded to 2 decimals, 0 for no records
    """
    records = list(records)
    succeeded = sum(
        1 for record in records if safe_getattr(record, "success") is not False
    )

    return round(safe_divide(succeeded * 100, len(records)), 2)


def tokens_per_second(records: Iterable[Any]) -> float:
    """
    Mean of each record's ``token_count / (total_time / 1000)``.

    :param records: Probe records with ``total_time`` in milliseconds
    :return: Mean rate rounded to 2 decimals, 0 if no record has tokens and time
    """
    speeds = [
        _number(record, "token_count") / (_number(record, "total_time") / 1000)
        for record in records
        if _number(record, "token_count") > 0 and _number(record, "total_time") > 0
    ]

    return round(safe_divide(sum(speeds), len(speeds)), 2)


def latency_distribution(values: Iterable[Any]) -> LatencyDistribution:
    """
    Nearest-rank distribution of time-to-first-byte values.

    :param values: Probe records (their positive ``ttfb`` is used) or raw numbers
    :return: min, max, median at floor(n/2), p95 at floor(n*0.95) and p99 at
        floor(n*0.99) of the sorted values; all zero for no values
    """
    latencies = sorted(
        latency for value in values if (latency := _latency(value)) > 0
    )
    if not latencies:
        return LatencyDistribution()

    return LatencyDistribution(
        min=latencies[0],
        max=latencies[-1],
        median=_nearest_rank(latencies, 0.5),
        p95=_nearest_rank(latencies, 0.95),
        p99=_nearest_rank(latencies, 0.99),
    )


def _latency(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value

    return _number(value, "ttfb")


def _nearest_rank(sorted_values: Sequence[float], quantile: float) -> float:
    index = min(math.floor(len(sorted_values) * quantile), len(sorted_values) - 1)
    return sorted_values[index]


def performance_score(
    average_response_time: float, success_rate: float, tokens_per_second: float
) -> int:
    """
    Composite 0-100 score.

    Starts at 100, subtracts a response time penalty (20/15/10/5 above
    5000/3000/1000/500 ms), ``(100 - success_rate) * 0.3`` and a throughput
    penalty (30/20/10/5 below 10/20/50/100 tokens/sec), then clamps to
    [0, 100] and rounds half up.

    :param average_response_time: Mean response time in milliseconds
    :param success_rate: Success percentage, 0 to 100
    :param tokens_per_second: Mean token rate
    :return: Integer score
    """
    score = 100.0
    score -= next(
        (
            penalty
            for threshold, penalty in RESPONSE_TIME_PENALTIES
            if average_response_time > threshold
        ),
        0,
    )
    score -= (100 - success_rate) * SUCCESS_RATE_WEIGHT
    score -= next(
        (
            penalty
            for threshold, penalty in THROUGHPUT_PENALTIES
            if tokens_per_second < threshold
        ),
        0,
    )

    return round_half_up(min(100.0, max(0.0, score)))


def summarize(records: Iterable[Any]) -> PerformanceSummary:
    """
    Compute every aggregate for a set of probe records.

    :param records: Probe records
    :return: PerformanceSummary including the composite score
    """
    records = list(records)
    average = average_response_time(records)
    rate = success_rate(records)
    speed = tokens_per_second(records)

    return PerformanceSummary(
        count=len(records),
        average_response_time=average,
        success_rate=rate,
        tokens_per_second=speed,
        latency=latency_distribution(records),
        score=performance_score(average, rate, speed) if records else 0,
    )
