"""Staging run state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class StagingStage(str, Enum):
    """Staging run stages."""

    PENDING = "pending"
    FETCHING = "fetching"
    COMPUTING = "computing"
    COMMITTING = "committing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted."""

    def __init__(self, from_stage: str, to_stage: str, reason: str | None = None):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.reason = reason
        msg = f"Invalid transition from '{from_stage}' to '{to_stage}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StagingStateMachine:
    """Tracks one staging run through its stages.

    Allowed transitions:
    - pending → fetching
    - fetching → computing
    - computing → committing
    - committing → completed
    - any non-terminal stage → failed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        StagingStage.PENDING: [StagingStage.FETCHING, StagingStage.FAILED],
        StagingStage.FETCHING: [StagingStage.COMPUTING, StagingStage.FAILED],
        StagingStage.COMPUTING: [StagingStage.COMMITTING, StagingStage.FAILED],
        StagingStage.COMMITTING: [StagingStage.COMPLETED, StagingStage.FAILED],
        StagingStage.COMPLETED: [],  # Terminal state
        StagingStage.FAILED: [],  # Terminal state
    }

    TERMINAL = {StagingStage.COMPLETED, StagingStage.FAILED}

    # Stages during which the session may hold uncommitted breakdown writes
    WRITES_PENDING = {StagingStage.COMMITTING}

    def __init__(self, stage: StagingStage = StagingStage.PENDING):
        self.stage = stage
        self.history: list[StagingStage] = [stage]

    @classmethod
    def can_transition(cls, from_stage: str, to_stage: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_stage, [])
        return to_stage in allowed

    @classmethod
    def validate_transition(cls, from_stage: str, to_stage: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_stage, to_stage):
            reason = "stage is terminal" if from_stage in cls.TERMINAL else None
            raise InvalidTransitionError(from_stage, to_stage, reason)

    @classmethod
    def get_next_stages(cls, current_stage: str) -> list[str]:
        """Get list of valid next stages from current stage."""
        return cls.VALID_TRANSITIONS.get(current_stage, [])

    @property
    def is_terminal(self) -> bool:
        return self.stage in self.TERMINAL

    @property
    def has_pending_writes(self) -> bool:
        return self.stage in self.WRITES_PENDING

    def advance(self, to_stage: StagingStage) -> StagingStage:
        """Move to ``to_stage``; returns the stage that was left."""
        self.validate_transition(self.stage, to_stage)
        previous = self.stage
        self.stage = to_stage
        self.history.append(to_stage)
        return previous

    def fail(self) -> StagingStage:
        """Mark the run failed; returns the stage that failed."""
        return self.advance(StagingStage.FAILED)
