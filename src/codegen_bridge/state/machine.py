"""Delegated build run state machine.

Tracks a single delegated build invocation through its stages and
rejects transitions the run lifecycle does not allow. Nothing is
persisted: a machine lives exactly as long as one `run` call.
"""

import logging
from typing import Any, List, Optional

from src.codegen_bridge.state.models import (
    TERMINAL_STAGES,
    RunStage,
    StageTransition,
    is_valid_transition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: RunStage,
        to_stage: RunStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class RunStateMachine:
    """State machine of one delegated build run.

    Attributes:
        stage: The current stage.
        history: Ordered list of transitions taken so far.
    """

    def __init__(self, workspace: str = ""):
        self.workspace = workspace
        self.stage = RunStage.IDLE
        self.history: List[StageTransition] = []

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage == RunStage.COMPLETED

    def transition(self, to_stage: RunStage, **details: Any) -> StageTransition:
        """Move to the target stage.

        Args:
            to_stage: Stage to move to.
            **details: Metadata recorded with the transition.

        Returns:
            The recorded transition.

        Raises:
            InvalidTransitionError: If the move is not allowed.
        """
        if not is_valid_transition(self.stage, to_stage):
            raise InvalidTransitionError(self.stage, to_stage)

        record = StageTransition(
            from_stage=self.stage,
            to_stage=to_stage,
            details=details,
        )
        self.history.append(record)
        self.stage = to_stage

        logger.debug(
            "Run stage %s -> %s",
            record.from_stage.value,
            record.to_stage.value,
            extra={"workspace": self.workspace},
        )
        return record
