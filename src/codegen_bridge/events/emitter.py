"""Event emitter implementations for bridge observability.

This module defines an abstract EventEmitter interface and concrete
implementations for different event sinks:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Source:
- src/codegen_bridge/events/models.py (BuildEvent, EventType)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from src.codegen_bridge.events.models import BuildEvent, EventType


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the bridge.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for build event emitters.

    Implementations should not let a sink failure interrupt the build;
    emit() failures are logged by the callers that fan out events.
    """

    @abstractmethod
    async def emit(self, event: BuildEvent) -> None:
        """Emit a build event.

        Args:
            event: The build event to emit.
        """
        pass

    async def close(self) -> None:
        """Close the emitter and release resources."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at different levels based on event type:

    - STATE_TRANSITION: INFO level
    - COMPLETION: INFO level
    - ERROR: ERROR level
    - TIMEOUT: WARNING level
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = (
            logging.getLogger(logger_name)
            if logger_name
            else logger
        )
        self._log_level_map = {
            EventType.STATE_TRANSITION: logging.INFO,
            EventType.COMPLETION: logging.INFO,
            EventType.ERROR: logging.ERROR,
            EventType.TIMEOUT: logging.WARNING,
        }

    async def emit(self, event: BuildEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Build event: %s for %s",
            event.event_type.value,
            event.task,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child emitter is called independently; an error in one is
    logged and does not prevent the others from receiving the event.

    Attributes:
        emitters: List of child emitters to delegate to.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get a copy of the list of child emitters."""
        return list(self._emitters)

    async def emit(self, event: BuildEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "task": event.task,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: BuildEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Create an event emitter for the requested sinks.

    Args:
        sink_types: Event sink types to enable. If None or empty,
                    returns a LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        A single emitter, or a CompositeEventEmitter for several sinks.
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # metrics.py imports this module
            from src.codegen_bridge.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())
        else:
            logger.warning(
                "Unknown event sink type: %s, skipping",
                sink_type,
            )

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
