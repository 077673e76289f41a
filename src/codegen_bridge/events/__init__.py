"""Bridge event emission and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events

Metrics:
- BridgeMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- write_metrics_file: Export metrics for a textfile collector
"""

from src.codegen_bridge.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.codegen_bridge.events.metrics import (
    BridgeMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
    write_metrics_file,
)
from src.codegen_bridge.events.models import BuildEvent, EventType

__all__ = [
    # Event models
    "EventType",
    "BuildEvent",
    # Event emitters
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    # Metrics
    "BridgeMetrics",
    "get_metrics",
    "generate_metrics_output",
    "write_metrics_file",
    # Factory and configuration
    "EventSinkType",
    "create_event_emitter",
]
