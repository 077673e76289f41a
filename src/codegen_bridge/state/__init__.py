"""Delegated build run state machine.

This module tracks one delegated build through its stages:
- idle → logs_prepared → child_launched
- → completed | failed | timed_out
"""

from src.codegen_bridge.state.models import (
    RunStage,
    StageTransition,
    TERMINAL_STAGES,
    VALID_TRANSITIONS,
    is_valid_transition,
)
from src.codegen_bridge.state.machine import (
    InvalidTransitionError,
    RunStateMachine,
)

__all__ = [
    # Models
    "RunStage",
    "StageTransition",
    "TERMINAL_STAGES",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    # State machine
    "InvalidTransitionError",
    "RunStateMachine",
]
