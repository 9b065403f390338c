"""Pay run engine services."""

from payrun_engine.services.attendance import AttendanceSource, HttpAttendanceSource
from payrun_engine.services.commit_service import CommitService
from payrun_engine.services.snapshot_service import (
    PayPeriodNotFoundError,
    PayPeriodProcessedError,
    SnapshotService,
)
from payrun_engine.services.staging_service import PayrollStagingPipeline, PayslipData, StageFailure
from payrun_engine.services.state_machine import InvalidTransitionError, StagingStage, StagingStateMachine

__all__ = [
    "AttendanceSource",
    "HttpAttendanceSource",
    "CommitService",
    "SnapshotService",
    "PayPeriodNotFoundError",
    "PayPeriodProcessedError",
    "PayrollStagingPipeline",
    "PayslipData",
    "StageFailure",
    "StagingStateMachine",
    "StagingStage",
    "InvalidTransitionError",
]
