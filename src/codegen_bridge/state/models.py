"""Delegated build run state models.

This module defines the data models for the per-invocation run state
machine, including:
- RunStage: Enum of all stages of a delegated build run
- StageTransition: Record of a stage transition with timestamp and details
- VALID_TRANSITIONS: Map defining allowed stage transitions

The models use Pydantic for validation, consistent with the event
models in events/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet

from pydantic import BaseModel, Field


class RunStage(str, Enum):
    """Stages of one delegated build run.

    Stage Flow:
        idle → logs_prepared → child_launched → completed | failed | timed_out

    `logs_prepared` may also move to `failed` when the child process
    cannot be started. `completed` is the only successful terminal stage.

    Attributes:
        IDLE: Nothing done yet.
        LOGS_PREPARED: Log files truncated, command built.
        CHILD_LAUNCHED: Wrapper process started, waiting for it.
        COMPLETED: Process exited with code 0 within the timeout.
        FAILED: Process exited with a non-zero code or could not start.
        TIMED_OUT: Process did not exit within the timeout and was stopped.
    """

    IDLE = "idle"
    LOGS_PREPARED = "logs_prepared"
    CHILD_LAUNCHED = "child_launched"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


VALID_TRANSITIONS: Dict[RunStage, FrozenSet[RunStage]] = {
    RunStage.IDLE: frozenset({RunStage.LOGS_PREPARED}),
    RunStage.LOGS_PREPARED: frozenset(
        {RunStage.CHILD_LAUNCHED, RunStage.FAILED}
    ),
    RunStage.CHILD_LAUNCHED: frozenset(
        {RunStage.COMPLETED, RunStage.FAILED, RunStage.TIMED_OUT}
    ),
    RunStage.COMPLETED: frozenset(),
    RunStage.FAILED: frozenset(),
    RunStage.TIMED_OUT: frozenset(),
}

TERMINAL_STAGES = frozenset(
    stage for stage, targets in VALID_TRANSITIONS.items() if not targets
)


def is_valid_transition(from_stage: RunStage, to_stage: RunStage) -> bool:
    """Check whether a transition is allowed."""
    return to_stage in VALID_TRANSITIONS.get(from_stage, frozenset())


class StageTransition(BaseModel):
    """Record of a run stage transition.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (exit code, log paths, etc.).
    """

    from_stage: RunStage = Field(
        ...,
        description="The run stage before this transition",
    )

    to_stage: RunStage = Field(
        ...,
        description="The run stage after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata about the transition",
    )
