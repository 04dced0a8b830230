"""
Console rendering of probe runs.

Provides a rich Console with status styling, a progress sink that consumes
orchestrator and monitor events while a run is in flight, and table
renderers for finished RunReports and ComparisonSummaries.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from rich.console import Console as RichConsole
from rich.padding import Padding
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from modelprobe.metrics import summarize
from modelprobe.schemas import (
    ComparisonSummary,
    InconsistentOutcome,
    InvalidOutcome,
    RunReport,
    StreamEmptyOutcome,
)
from modelprobe.utils import BusEvent

__all__ = [
    "Colors",
    "Console",
    "ConsoleProbeProgress",
    "StatusIcons",
    "StatusLevel",
    "StatusStyles",
    "print_comparison",
    "print_report",
]

StatusLevel = Annotated[
    Literal["debug", "info", "warning", "error", "critical", "success"],
    "Status level for console messages indicating severity or outcome",
]


class Colors:
    info: str = "light_steel_blue"
    progress: str = "dark_slate_gray1"
    success: str = "chartreuse1"
    warning: str = "#FDB516"
    error: str = "orange_red1"


StatusIcons: Mapping[str, str] = {
    "debug": "…",
    "info": "ℹ",
    "warning": "⚠",
    "error": "✖",
    "critical": "‼",
    "success": "✔",
}

StatusStyles: Mapping[str, str] = {
    "debug": "dim",
    "info": f"bold {Colors.info}",
    "warning": f"bold {Colors.warning}",
    "error": f"bold {Colors.error}",
    "critical": "bold red reverse",
    "success": f"bold {Colors.success}",
}

# progress event kind -> status level used to render it
EVENT_LEVELS: Mapping[str, StatusLevel] = {
    "valid": "success",
    "streamValid": "success",
    "inconsistent": "warning",
    "streamEmpty": "warning",
    "invalid": "error",
    "streamInvalid": "error",
    "error": "critical",
    "comparisonStarted": "info",
    "alert": "warning",
}
PROBE_EVENTS = frozenset(EVENT_LEVELS) - {"comparisonStarted", "alert"}


class Console(RichConsole):
    """Rich console with icon-prefixed status lines."""

    def print_update(
        self,
        title: str,
        details: Any | None = None,
        status: StatusLevel = "info",
    ):
        """
        :param title: Main status message
        :param details: Optional text shown dimmed and indented below the title
        :param status: Status level selecting the icon and style
        """
        icon = StatusIcons.get(status, "•")
        self.print(Text.assemble(f"{icon} ", (title, StatusStyles.get(status, "bold"))))

        if details:
            self.print(
                Padding(Text(str(details)), (0, 0, 0, 2), style=StatusStyles["debug"])
            )


class ConsoleProbeProgress:
    """
    Progress sink printing one line per probe and a live progress bar.

    Use as a context manager around the run and pass the instance as the
    ``progress`` callback.

    Example:
    ::
        with ConsoleProbeProgress(total=len(models)) as progress:
            report = await orchestrator.run(models, prompt, 10_000, progress=progress)
    """

    def __init__(self, total: int, console: Console | None = None):
        """
        :param total: Number of probes expected, grows if a comparison pass
            starts
        :param console: Console to print to, defaults to a new Console
        """
        self.console = console or Console()
        self.total = total
        self.counts: Counter[str] = Counter()
        self.progress = Progress(
            SpinnerColumn(style=Colors.progress),
            TextColumn("Probing models", style=f"italic {Colors.progress}"),
            BarColumn(complete_style=Colors.progress, finished_style=Colors.success),
            TextColumn("({task.completed}/{task.total})", style=Colors.progress),
            TextColumn("["),
            TimeElapsedColumn(),
            TextColumn("]"),
            console=self.console,
        )
        self.task_id: TaskID | None = None

    def __enter__(self) -> ConsoleProbeProgress:
        self.task_id = self.progress.add_task("", total=self.total)
        self.progress.start()
        return self

    def __exit__(self, *exc_info):
        self.progress.stop()

    def __call__(self, event: BusEvent):
        if event.kind not in EVENT_LEVELS:
            return

        self.counts[event.kind] += 1
        title, details = self.describe(event)
        self.console.print_update(title, details, EVENT_LEVELS[event.kind])

        if event.kind == "comparisonStarted":
            self.total += len(event.payload.get("models", []))
            self._update(total=self.total)
        elif event.kind in PROBE_EVENTS:
            self._update(advance=1)

    @staticmethod
    def describe(event: BusEvent) -> tuple[str, str | None]:
        """
        :param event: Progress event
        :return: Title and optional details line for the event
        """
        payload = event.payload

        if event.kind == "valid":
            return f"{payload.model} valid in {payload.response_time_ms} ms", None
        if event.kind == "streamValid":
            return (
                f"{payload.model} streamed {payload.token_count} tokens",
                f"ttfb {payload.ttfb_ms} ms, {payload.tokens_per_second} tokens/s",
            )
        if isinstance(payload, InconsistentOutcome):
            return f"{payload.model} inconsistent", payload.message
        if isinstance(payload, InvalidOutcome):
            return f"{payload.model} invalid", payload.response_text
        if isinstance(payload, StreamEmptyOutcome):
            return f"{payload.model} empty stream", payload.warning
        if event.kind == "error":
            return f"{payload.model} orchestration error", payload.error
        if event.kind == "comparisonStarted":
            return payload["message"], None

        return getattr(payload, "message", str(payload)), None

    def _update(self, **kwargs):
        if self.task_id is not None:
            self.progress.update(self.task_id, **kwargs)


def _cell(value: Any) -> str:
    return "-" if value is None else str(value)


def _detail(outcome: Any) -> str:
    if isinstance(outcome, InvalidOutcome):
        return outcome.response_text
    if isinstance(outcome, StreamEmptyOutcome):
        return outcome.warning
    if isinstance(outcome, InconsistentOutcome):
        return f"answered as {outcome.returned_model}"

    return ""


def print_report(report: RunReport, console: Console | None = None):
    """
    Print every outcome of a run followed by its aggregate metrics.

    :param report: Finished run report
    :param console: Console to print to, defaults to a new Console
    """
    console = console or Console()
    table = Table(title=f"Probe results ({report.mode})", title_justify="left")
    table.add_column("Model")
    table.add_column("Status")
    for header in ("Time (ms)", "TTFB (ms)", "Tokens", "Tokens/s"):
        table.add_column(header, justify="right")
    table.add_column("Detail", overflow="fold")

    for outcome in report.outcomes():
        record = outcome.to_record()
        detail = _detail(outcome)
        table.add_row(
            outcome.model,
            outcome.status,
            _cell(record.response_time),
            _cell(record.ttfb),
            str(record.token_count),
            str(record.tokens_per_second),
            detail,
        )
    for failure in report.errors:
        table.add_row(failure.model, "error", "-", "-", "-", "-", failure.error)

    console.print(table)

    summary = summarize(report.records())
    console.print_update(
        f"{report.total} probed: {len(report.valid)} valid, "
        f"{len(report.inconsistent)} inconsistent, {len(report.invalid)} invalid, "
        f"{len(report.stream_empty)} stream empty, {len(report.errors)} errors",
        f"avg {summary.average_response_time} ms, success {summary.success_rate}%, "
        f"{summary.tokens_per_second} tokens/s, p95 ttfb {summary.latency.p95} ms, "
        f"score {summary.score}",
        "success" if not report.invalid and not report.errors else "warning",
    )

    if report.comparison is not None:
        print_report(report.comparison, console)


def print_comparison(summary: ComparisonSummary, console: Console | None = None):
    """
    Print a streaming versus non-streaming comparison.

    :param summary: Comparison to print
    :param console: Console to print to, defaults to a new Console
    """
    console = console or Console()
    table = Table(
        title=f"{summary.model}: {summary.iterations} iterations", title_justify="left"
    )
    table.add_column("Mode")
    table.add_column("Latency (ms)", justify="right")
    table.add_column("Tokens/s", justify="right")
    table.add_column("Success", justify="right")
    table.add_row(
        "streaming (ttfb)",
        f"{summary.stream.average_ttfb:.0f}",
        f"{summary.stream.average_tokens_per_second:.2f}",
        f"{summary.stream.success_rate:.0%}",
    )
    table.add_row(
        "non-streaming",
        f"{summary.non_stream.average_response_time:.0f}",
        "-",
        f"{summary.non_stream.success_rate:.0%}",
    )

    console.print(table)
    console.print_update("Recommendation", summary.recommendation, "info")
