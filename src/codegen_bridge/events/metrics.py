"""Prometheus metrics for bridge observability.

Metrics Defined:
- codegen_delegated_builds_total: Counter of delegated builds by result
- codegen_delegated_build_duration_seconds: Histogram of delegated build time
- codegen_task_failures_total: Counter of failed tasks
- codegen_runs_by_stage: Gauge of delegated runs per run stage

The MetricsEventEmitter updates the metrics from build events. The CLI
writes them to a text file in the Prometheus exposition format.

Source:
- src/codegen_bridge/events/models.py (BuildEvent, EventType)
- src/codegen_bridge/state/models.py (RunStage)
"""

import logging
from pathlib import Path
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.codegen_bridge.events.emitter import EventEmitter
from src.codegen_bridge.events.models import BuildEvent, EventType
from src.codegen_bridge.state.models import RunStage


logger = logging.getLogger(__name__)

APPLY_TASK = "applyCodegenPlugins"

# Covers a quick incremental run up to the default 10 minute timeout
DEFAULT_DURATION_BUCKETS = (
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1800.0,
)

RUN_STAGES = tuple(stage.value for stage in RunStage)


class BridgeMetrics:
    """Container for all bridge Prometheus metrics.

    Supports custom registries for testing.

    Attributes:
        registry: The Prometheus registry for these metrics.
        delegated_builds_total: Counter labelled by result.
        delegated_build_duration_seconds: Histogram of run durations.
        task_failures_total: Counter labelled by task.
        runs_by_stage: Gauge labelled by stage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.delegated_builds_total = Counter(
            "codegen_delegated_builds_total",
            "Total number of delegated code generation builds",
            labelnames=["result"],
            registry=self.registry,
        )

        self.delegated_build_duration_seconds = Histogram(
            "codegen_delegated_build_duration_seconds",
            "Time spent in delegated code generation builds in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.task_failures_total = Counter(
            "codegen_task_failures_total",
            "Total number of failed bridge tasks",
            labelnames=["task"],
            registry=self.registry,
        )

        self.runs_by_stage = Gauge(
            "codegen_runs_by_stage",
            "Current number of delegated runs in each run stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        for stage in RUN_STAGES:
            self.runs_by_stage.labels(stage=stage).set(0)

    def record_delegated_build(self, result: str) -> None:
        """Record a finished delegated build.

        Args:
            result: "success", "failure" or "timeout".
        """
        self.delegated_builds_total.labels(result=result).inc()

    def record_build_duration(self, duration_seconds: float) -> None:
        self.delegated_build_duration_seconds.observe(duration_seconds)

    def record_task_failure(self, task: str) -> None:
        self.task_failures_total.labels(task=task).inc()

    def update_stage_count(self, stage: str, delta: int) -> None:
        """Update the count of runs in a stage.

        Args:
            stage: The run stage to update.
            delta: The change in count (+1 for entering, -1 for leaving).
        """
        if stage in RUN_STAGES:
            current = self.runs_by_stage.labels(stage=stage)._value.get()
            self.runs_by_stage.labels(stage=stage).set(max(0, current + delta))


_default_metrics: Optional[BridgeMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BridgeMetrics:
    """Get the global metrics instance, or a new one for a custom registry."""
    global _default_metrics

    if registry is not None:
        return BridgeMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BridgeMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate metrics in the Prometheus text format."""
    return generate_latest(registry or REGISTRY)


def write_metrics_file(
    path: Path, registry: Optional[CollectorRegistry] = None
) -> None:
    """Write metrics to a file for a textfile collector.

    The content is written next to the target first and then moved in
    place, so a collector never reads a half-written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(path.name + ".tmp")
    staging.write_bytes(generate_metrics_output(registry))
    staging.replace(path)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: Updates the runs_by_stage gauge
    - ERROR: Increments task failures; a failed delegated build is
      counted as "failure"
    - COMPLETION: Counts a successful delegated build and its duration
    - TIMEOUT: Counts a timed out delegated build

    Attributes:
        metrics: The BridgeMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[BridgeMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> BridgeMetrics:
        return self._metrics

    async def emit(self, event: BuildEvent) -> None:
        try:
            if event.event_type == EventType.STATE_TRANSITION:
                self._handle_state_transition(event)
            elif event.event_type == EventType.ERROR:
                self._handle_error(event)
            elif event.event_type == EventType.COMPLETION:
                self._handle_completion(event)
            elif event.event_type == EventType.TIMEOUT:
                self._metrics.record_delegated_build("timeout")
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "task": event.task},
            )

    def _handle_state_transition(self, event: BuildEvent) -> None:
        from_stage = event.details.get("from_stage")
        to_stage = event.details.get("to_stage")

        if from_stage:
            self._metrics.update_stage_count(from_stage, -1)
        if to_stage:
            self._metrics.update_stage_count(to_stage, +1)

    def _handle_error(self, event: BuildEvent) -> None:
        self._metrics.record_task_failure(event.task)
        if (
            event.task == APPLY_TASK
            and event.details.get("error_type") == "DelegatedBuildError"
            and not event.details.get("timed_out")
        ):
            self._metrics.record_delegated_build("failure")

    def _handle_completion(self, event: BuildEvent) -> None:
        if event.task != APPLY_TASK:
            return
        self._metrics.record_delegated_build("success")
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_build_duration(float(duration))
