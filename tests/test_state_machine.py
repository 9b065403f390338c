"""Tests for the staging run state machine."""

import pytest

from payrun_engine.services.state_machine import (
    InvalidTransitionError,
    StagingStage,
    StagingStateMachine,
)


class TestStagingStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that the forward path is allowed."""
        assert StagingStateMachine.can_transition("pending", "fetching") is True
        assert StagingStateMachine.can_transition("fetching", "computing") is True
        assert StagingStateMachine.can_transition("computing", "committing") is True
        assert StagingStateMachine.can_transition("committing", "completed") is True

    def test_any_active_stage_can_fail(self):
        for stage in ("pending", "fetching", "computing", "committing"):
            assert StagingStateMachine.can_transition(stage, "failed") is True

    def test_invalid_transitions(self):
        """Test that skipping and going backwards are blocked."""
        # Can't skip a stage
        assert StagingStateMachine.can_transition("pending", "computing") is False
        assert StagingStateMachine.can_transition("fetching", "committing") is False

        # Can't go backwards
        assert StagingStateMachine.can_transition("computing", "fetching") is False
        assert StagingStateMachine.can_transition("committing", "computing") is False

        # Terminal stages
        assert StagingStateMachine.can_transition("completed", "failed") is False
        assert StagingStateMachine.can_transition("failed", "pending") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            StagingStateMachine.validate_transition("completed", "fetching")

        assert exc_info.value.from_stage == "completed"
        assert exc_info.value.to_stage == "fetching"
        assert "terminal" in str(exc_info.value)

    def test_get_next_stages(self):
        assert StagingStateMachine.get_next_stages("committing") == [
            StagingStage.COMPLETED,
            StagingStage.FAILED,
        ]
        assert StagingStateMachine.get_next_stages("failed") == []


class TestStagingRun:
    """Test tracking a single run."""

    def test_full_run(self):
        machine = StagingStateMachine()

        for stage in (
            StagingStage.FETCHING,
            StagingStage.COMPUTING,
            StagingStage.COMMITTING,
            StagingStage.COMPLETED,
        ):
            machine.advance(stage)

        assert machine.is_terminal
        assert machine.history == [
            StagingStage.PENDING,
            StagingStage.FETCHING,
            StagingStage.COMPUTING,
            StagingStage.COMMITTING,
            StagingStage.COMPLETED,
        ]

    def test_fail_returns_failed_stage(self):
        machine = StagingStateMachine()
        machine.advance(StagingStage.FETCHING)
        machine.advance(StagingStage.COMPUTING)
        machine.advance(StagingStage.COMMITTING)

        assert machine.has_pending_writes
        assert machine.fail() is StagingStage.COMMITTING
        assert machine.stage is StagingStage.FAILED
        assert not machine.has_pending_writes

    def test_out_of_order_advance_raises(self):
        machine = StagingStateMachine()

        with pytest.raises(InvalidTransitionError):
            machine.advance(StagingStage.COMMITTING)

        assert machine.stage is StagingStage.PENDING
