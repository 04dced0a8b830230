"""
Session-level performance monitoring.

PerformanceMonitor wraps a ProbeOrchestrator with a monitoring session
lifecycle, a bounded realtime event log, a bounded alert log and a bounded
history of closed sessions. Per-model monitoring calls work with or without
an active session: they always feed the realtime and alert logs and only
append to the session when one is active.

Events emitted on ``monitor.events``:

- ``monitoringStarted`` / ``monitoringStopped``: session lifecycle
- ``modelProgress``: streaming progress of a monitored model
- ``metricsUpdate``: a RealtimeMetric was recorded
- ``alert``: an Alert was raised
- ``alertsCleared``, ``dataImported``, ``dataCleared``: log maintenance
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from loguru import logger

from modelprobe.metrics import PerformanceSummary, summarize
from modelprobe.monitor.comparator import PerformanceComparator
from modelprobe.orchestrator import ProbeOrchestrator
from modelprobe.schemas import (
    Alert,
    AlertSeverity,
    ComparisonSummary,
    InvalidOutcome,
    ModelMonitorResult,
    MonitoringSession,
    MonitorSnapshot,
    ProbeOutcome,
    ProbeRecord,
    RealtimeMetric,
    StreamEmptyOutcome,
)
from modelprobe.settings import MonitorSettings, settings
from modelprobe.utils import ALL_EVENTS, BoundedLog, BusEvent, EventBus, EventCallback

__all__ = ["PerformanceMonitor"]


class PerformanceMonitor:
    """
    Tracks probe results across monitoring sessions.

    ``start_monitoring`` while a session is active stops and archives that
    session first, then opens the new one. ``stop_monitoring`` while idle
    only logs a warning.

    Example:
    ::
        monitor = PerformanceMonitor(ProbeOrchestrator(transport))
        monitor.start_monitoring({"target": target})
        results = await monitor.monitor_models(models, prompt, 10_000)
        session = monitor.stop_monitoring()
        print(monitor.summary().score)
    """

    def __init__(
        self,
        orchestrator: ProbeOrchestrator,
        config: MonitorSettings | None = None,
    ):
        """
        :param orchestrator: Orchestrator used to send every probe
        :param config: Log capacities and comparison defaults, defaults to
            settings.monitor
        """
        self.orchestrator = orchestrator
        self.config = config or settings.monitor
        self.events = EventBus()
        self.comparator = PerformanceComparator(orchestrator)
        self._realtime: BoundedLog[RealtimeMetric] = BoundedLog(
            self.config.realtime_log_capacity
        )
        self._alerts: BoundedLog[Alert] = BoundedLog(self.config.alert_log_capacity)
        self._history: BoundedLog[MonitoringSession] = BoundedLog(
            self.config.history_capacity
        )
        self._session: MonitoringSession | None = None

    def subscribe(self, kind: str | None, callback: EventCallback):
        return self.events.subscribe(kind, callback)

    @property
    def monitoring(self) -> bool:
        return self._session is not None

    @property
    def current_session(self) -> MonitoringSession | None:
        return self._session

    @property
    def realtime_metrics(self) -> list[RealtimeMetric]:
        return self._realtime.items()

    @property
    def alerts(self) -> list[Alert]:
        return self._alerts.items()

    @property
    def historical_sessions(self) -> list[MonitoringSession]:
        return self._history.items()

    def start_monitoring(
        self, config: Mapping[str, Any] | None = None
    ) -> MonitoringSession:
        """
        Open a new monitoring session.

        :param config: Free-form description of the run stored on the session
        :return: The new active session
        """
        if self._session is not None:
            logger.warning(
                f"Monitoring session {self._session.id} is still active, "
                "stopping it before starting a new one"
            )
            self.stop_monitoring()

        self._session = MonitoringSession(config=dict(config or {}))
        logger.info(f"Started monitoring session {self._session.id}")
        self.events.emit("monitoringStarted", self._session)

        return self._session

    def stop_monitoring(self) -> MonitoringSession | None:
        """
        Close the active session and archive it in the history log.

        :return: The closed session, or None if no session was active
        """
        if self._session is None:
            logger.warning("stop_monitoring called without an active session")
            return None

        session = self._session.close()
        self._session = None
        self._history.append(session)
        logger.info(
            f"Stopped monitoring session {session.id} after {session.duration_ms} ms "
            f"with {len(session.probes)} probes"
        )
        self.events.emit("monitoringStopped", session)

        return session

    async def monitor_stream_model(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        progress: EventCallback | None = None,
    ) -> ProbeOutcome:
        """
        Probe a model in streaming mode and record its token timeline.

        Every decoded token and the final stream metrics are added to the
        realtime log. Invalid and empty streams raise an alert.

        :param model: Model identifier
        :param prompt: Prompt to send
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param progress: Callback receiving this monitor's events while the
            probe runs
        :return: The classified outcome
        """
        decoder = self.orchestrator.stream_decoder()
        decoder.subscribe(
            "progress",
            lambda event: self.events.emit(
                "modelProgress",
                {"model": model, "mode": "streaming", "data": event.payload},
            ),
        )
        decoder.subscribe(
            "token", lambda event: self.record_metric(model, "token", event.payload)
        )
        decoder.subscribe(
            "complete",
            lambda event: self.record_metric(model, "complete", event.payload),
        )
        decoder.subscribe("error", lambda event: self._stream_error(model, event))

        unsubscribe = (
            self.events.subscribe(ALL_EVENTS, progress)
            if progress is not None
            else None
        )
        try:
            outcome = await self.orchestrator.probe(
                model, prompt, base_timeout_ms, mode="streaming", decoder=decoder
            )

            if isinstance(outcome, InvalidOutcome):
                self.add_alert(
                    "error",
                    f"{model} streaming probe failed: {outcome.response_text}",
                    severity="error",
                )
                self.record_metric(model, "error", outcome)
            elif isinstance(outcome, StreamEmptyOutcome):
                self.add_alert("streamEmpty", f"{model}: {outcome.warning}")
        except Exception as err:
            self._probe_raised(model, "streaming", err)
            raise
        finally:
            if unsubscribe is not None:
                unsubscribe()

        self._record(outcome)

        return outcome

    async def monitor_non_stream_model(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        progress: EventCallback | None = None,
    ) -> ProbeOutcome:
        """
        Probe a model in non-streaming mode.

        :param model: Model identifier
        :param prompt: Prompt to send
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param progress: Callback receiving this monitor's events while the
            probe runs
        :return: The classified outcome
        """
        unsubscribe = (
            self.events.subscribe(ALL_EVENTS, progress)
            if progress is not None
            else None
        )
        try:
            outcome = await self.orchestrator.probe(
                model, prompt, base_timeout_ms, mode="non-streaming"
            )

            if isinstance(outcome, InvalidOutcome):
                self.add_alert(
                    "error",
                    f"{model} non-streaming probe failed: {outcome.response_text}",
                    severity="error",
                )
                self.record_metric(model, "error", outcome)
            else:
                self.record_metric(
                    model,
                    "complete",
                    {
                        "response_time": outcome.response_time_ms,
                        "content_length": outcome.content_length,
                        "usage": outcome.usage,
                        "model": getattr(outcome, "returned_model", outcome.model),
                    },
                )
                if outcome.status == "inconsistent":
                    self.add_alert("inconsistent", outcome.message)
        except Exception as err:
            self._probe_raised(model, "non-streaming", err)
            raise
        finally:
            if unsubscribe is not None:
                unsubscribe()

        self._record(outcome)

        return outcome

    async def compare_model_performance(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        iterations: int | None = None,
        delay_s: float | None = None,
    ) -> ComparisonSummary:
        """
        Compare streaming and non-streaming performance of a model.

        :param model: Model identifier
        :param prompt: Prompt to send
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param iterations: Stream/non-stream pairs, defaults to
            config.comparison_iterations
        :param delay_s: Pause between iterations, defaults to
            config.comparison_delay
        :return: The comparison, also recorded in the realtime log
        """
        try:
            summary = await self.comparator.compare(
                model,
                prompt,
                base_timeout_ms,
                iterations=iterations or self.config.comparison_iterations,
                delay_s=(
                    delay_s if delay_s is not None else self.config.comparison_delay
                ),
            )
        except Exception as err:
            self.add_alert(
                "error", f"{model} comparison failed: {err}", severity="error"
            )
            raise

        self.record_metric(model, "comparison", summary)

        return summary

    async def monitor_models(
        self,
        models: list[str],
        prompt: str,
        base_timeout_ms: int,
        concurrent: bool = False,
        include_comparison: bool = False,
        progress: EventCallback | None = None,
    ) -> list[ModelMonitorResult]:
        """
        Monitor every model in streaming then non-streaming mode.

        :param models: Model identifiers
        :param prompt: Prompt to send
        :param base_timeout_ms: Base timeout before per-model adjustments
        :param concurrent: Monitor all models at once instead of one by one
        :param include_comparison: Also run a comparison for every model
        :param progress: Callback receiving this monitor's events
        :return: One result per model, in the order given
        """
        unsubscribe = (
            self.events.subscribe(ALL_EVENTS, progress)
            if progress is not None
            else None
        )
        try:
            if concurrent:
                return list(
                    await asyncio.gather(
                        *(
                            self._monitor_model(
                                model, prompt, base_timeout_ms, include_comparison
                            )
                            for model in models
                        )
                    )
                )

            return [
                await self._monitor_model(
                    model, prompt, base_timeout_ms, include_comparison
                )
                for model in models
            ]
        finally:
            if unsubscribe is not None:
                unsubscribe()

    def _probe_raised(self, model: str, mode: str, err: Exception):
        message = str(err) or type(err).__name__
        self.add_alert(
            "error", f"{model} {mode} probe raised: {message}", severity="error"
        )
        self.record_metric(model, "error", {"error": message})

    def record_metric(
        self, model: str, event_type: str, payload: Any = None
    ) -> RealtimeMetric:
        """
        Append an entry to the realtime log, evicting the oldest when full.

        :param model: Model the entry belongs to
        :param event_type: Kind of entry, e.g. "token" or "complete"
        :param payload: Entry data
        :return: The recorded metric
        """
        metric = self._realtime.append(
            RealtimeMetric(model=model, event_type=event_type, payload=payload)
        )
        self.events.emit("metricsUpdate", metric)

        return metric

    def add_alert(
        self, kind: str, message: str, severity: AlertSeverity = "warning"
    ) -> Alert:
        """
        Raise an alert, evicting the oldest when the alert log is full.

        :param kind: Alert category, e.g. "error"
        :param message: Human readable description
        :param severity: One of info, warning, error, critical
        :return: The recorded alert
        """
        alert = self._alerts.append(
            Alert(kind=kind, message=message, severity=severity)
        )
        logger.debug(f"Alert [{severity}] {kind}: {message}")
        self.events.emit("alert", alert)

        return alert

    def clear_alerts(self):
        self._alerts.clear()
        self.events.emit("alertsCleared", {})

    def records(self) -> list[ProbeRecord]:
        """
        :return: Probe records of every archived session and the active one
        """
        sessions = self._history.items()
        if self._session is not None:
            sessions.append(self._session)

        return [record for session in sessions for record in session.probes]

    def summary(self) -> PerformanceSummary:
        """
        :return: Aggregate metrics over every record returned by records()
        """
        return summarize(self.records())

    def export_data(self) -> MonitorSnapshot:
        return MonitorSnapshot(
            realtime=self._realtime.items(),
            historical=self._history.items(),
            alerts=self._alerts.items(),
        )

    def import_data(self, data: MonitorSnapshot | Mapping[str, Any]) -> MonitorSnapshot:
        """
        Replace the logs with previously exported data.

        Entries beyond a log's capacity are evicted oldest first. The active
        session is left untouched.

        :param data: Snapshot or its dict form, e.g. parsed from JSON
        :return: The validated snapshot
        :raises pydantic.ValidationError: If data is not a valid snapshot
        """
        snapshot = (
            data
            if isinstance(data, MonitorSnapshot)
            else MonitorSnapshot.model_validate(data)
        )
        self._realtime = BoundedLog(
            self.config.realtime_log_capacity, snapshot.realtime
        )
        self._history = BoundedLog(self.config.history_capacity, snapshot.historical)
        self._alerts = BoundedLog(self.config.alert_log_capacity, snapshot.alerts)
        logger.info(
            f"Imported {len(snapshot.realtime)} metrics, "
            f"{len(snapshot.historical)} sessions and {len(snapshot.alerts)} alerts"
        )
        self.events.emit("dataImported", snapshot)

        return snapshot

    def clear_all(self):
        """Drop every log and the active session without archiving it."""
        self._realtime.clear()
        self._history.clear()
        self._alerts.clear()
        self._session = None
        self.events.emit("dataCleared", {})

    async def _monitor_model(
        self,
        model: str,
        prompt: str,
        base_timeout_ms: int,
        include_comparison: bool,
    ) -> ModelMonitorResult:
        try:
            stream = await self.monitor_stream_model(model, prompt, base_timeout_ms)
            non_stream = await self.monitor_non_stream_model(
                model, prompt, base_timeout_ms
            )
            comparison = (
                await self.compare_model_performance(model, prompt, base_timeout_ms)
                if include_comparison
                else None
            )
        except Exception as err:  # noqa: BLE001
            logger.exception(f"Monitoring model {model!r} failed")
            return ModelMonitorResult(model=model, error=str(err) or type(err).__name__)

        return ModelMonitorResult(
            model=model, stream=stream, non_stream=non_stream, comparison=comparison
        )

    def _stream_error(self, model: str, event: BusEvent):
        self.add_alert("error", f"{model} stream reported an error: {event.payload}")
        self.record_metric(model, "error", event.payload)

    def _record(self, outcome: ProbeOutcome):
        if self._session is not None:
            self._session.probes.append(outcome.to_record())
