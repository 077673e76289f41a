"""Build event models for observability.

This module defines the data models for bridge events, including:
- EventType: Enum of all event types emitted by the bridge
- BuildEvent: Structured event with all required metadata

Events are emitted for task starts and completions, run stage
transitions, failures and timeouts of the delegated build.

The models use Pydantic for validation, consistent with the run state
models in state/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the bridge.

    Event Categories:
        STATE_TRANSITION: A task started or a delegated run changed stage.
        ERROR: A task failed.
        COMPLETION: A task finished successfully.
        TIMEOUT: The delegated build exceeded its time limit.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    COMPLETION = "completion"
    TIMEOUT = "timeout"


class BuildEvent(BaseModel):
    """Structured event emitted by the bridge.

    Attributes:
        event_type: The category of event (state transition, error, etc.).
        task: Name of the task the event belongs to,
            e.g. "applyCodegenPlugins".
        workspace: Path of the codegen workspace.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage / to_stage: Run stages, or "pending"/"running"
              for task starts

        For ERROR events:
            - error_message: Human-readable error description
            - error_type: Exception class name

        For COMPLETION events:
            - duration_seconds: Time spent in the task

        For TIMEOUT events:
            - timeout_seconds: Configured timeout value
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    task: str = Field(
        ...,
        min_length=1,
        description="Name of the task the event belongs to",
    )

    workspace: str = Field(
        ...,
        min_length=1,
        description="Path of the codegen workspace",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary for structured logging.

        Returns:
            Dict[str, Any]: Flat dictionary representation of the event.
        """
        return {
            "event_type": self.event_type.value,
            "task": self.task,
            "workspace": self.workspace,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
