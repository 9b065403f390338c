"""Payroll staging pipeline - fetch, compute, commit."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.breakdown_builder import BreakdownBuilder
from payrun_engine.calculators.engine import PayPeriodCalculationResult, PayrollEngine
from payrun_engine.calculators.types import (
    AttendanceData,
    EmployeeRecord,
    PayheadRecord,
    PayheadType,
    PayPeriodInfo,
    PayrollRecord,
    StagingSnapshot,
    VariableAmount,
)
from payrun_engine.config import Settings, get_settings
from payrun_engine.models import PayheadBreakdown
from payrun_engine.services.attendance import AttendanceSource
from payrun_engine.services.commit_service import CommitService
from payrun_engine.services.snapshot_service import SnapshotService
from payrun_engine.services.state_machine import StagingStage, StagingStateMachine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

FETCH_MESSAGE = "Fetching unprocessed payroll data..."
COMPUTE_MESSAGE = "Performing calculations..."
COMMIT_MESSAGE = "Getting ready..."


class StageFailure(Exception):
    """Raised when a pipeline stage fails; nothing from the run is committed."""

    def __init__(self, stage: str, pay_period_id: int, cause: BaseException | None = None):
        self.stage = stage
        self.pay_period_id = pay_period_id
        self.cause = cause
        msg = f"Stage '{stage}' failed for pay period {pay_period_id}"
        if cause is not None:
            msg += f": {cause.__class__.__name__}: {cause}"
        super().__init__(msg)


@dataclass(frozen=True)
class BreakdownRecord:
    """A persisted breakdown row."""

    id: int
    payroll_id: int
    payhead_id: int
    amount: Decimal
    link_id: int | None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, row: PayheadBreakdown) -> BreakdownRecord:
        return cls(
            id=row.id,
            payroll_id=row.payroll_id,
            payhead_id=row.payhead_id,
            amount=row.amount,
            link_id=row.link_id,
            updated_at=row.updated_at,
        )


@dataclass
class PayslipData:
    """Everything payslip generation needs for one staged pay period."""

    pay_period: PayPeriodInfo
    payrolls: list[PayrollRecord]
    breakdowns: list[BreakdownRecord]
    employees: list[EmployeeRecord]
    earnings: list[PayheadRecord]
    deductions: list[PayheadRecord]
    calculated_amounts: dict[int, list[VariableAmount]]
    errors: dict[int, list[str]] = field(default_factory=dict)  # employee_id -> errors

    def totals_by_payroll(self) -> dict[int, dict[PayheadType, Decimal]]:
        """Earning and deduction totals of each payroll."""
        payheads = self.earnings + self.deductions
        rows: dict[int, list[tuple[int, Decimal]]] = {p.id: [] for p in self.payrolls}
        for b in self.breakdowns:
            rows.setdefault(b.payroll_id, []).append((b.payhead_id, b.amount))
        return {
            payroll_id: BreakdownBuilder.sum_by_type(amounts, payheads)
            for payroll_id, amounts in rows.items()
        }


class PayrollStagingPipeline:
    """Stages a pay period in three sequential steps.

    1. Fetch: persistence snapshot and attendance, concurrently
    2. Compute: every employee's amounts on the engine's thread pool
    3. Commit: upsert breakdowns in one transaction and assemble PayslipData

    A failing stage raises StageFailure and leaves nothing committed.
    """

    def __init__(
        self,
        session: AsyncSession,
        attendance_source: AttendanceSource,
        settings: Settings | None = None,
        progress: ProgressCallback | None = None,
        engine: PayrollEngine | None = None,
    ):
        self.session = session
        self.attendance_source = attendance_source
        self.settings = settings or get_settings()
        self.progress = progress
        self.engine = engine or PayrollEngine(self.settings)
        self.state = StagingStateMachine()

    async def run(self, pay_period_id: int) -> PayslipData:
        """Stage a pay period.

        Raises:
            PayPeriodNotFoundError: unknown pay period
            PayPeriodProcessedError: pay period already processed
            StageFailure: a stage failed; nothing was committed
        """
        pay_period = await SnapshotService(self.session).get_pay_period(pay_period_id)

        snapshot, attendance = await self._fetch(pay_period)
        calculation = await self._compute(snapshot, attendance)
        payslips = await self._commit(snapshot, calculation)

        self.state.advance(StagingStage.COMPLETED)
        logger.info(
            "Pay period %s staged: %d payrolls, %d breakdowns, %d employee errors",
            pay_period_id,
            len(payslips.payrolls),
            len(payslips.breakdowns),
            calculation.error_count,
        )
        return payslips

    async def _fetch(self, pay_period: PayPeriodInfo) -> tuple[StagingSnapshot, AttendanceData]:
        self._enter(StagingStage.FETCHING, FETCH_MESSAGE)

        try:
            snapshot, attendance = await asyncio.wait_for(
                asyncio.gather(
                    SnapshotService(self.session).fetch(pay_period),
                    self.attendance_source.fetch(pay_period.start_date, pay_period.end_date),
                    return_exceptions=True,
                ),
                timeout=self.settings.stage_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise self._failure(pay_period.id, e) from e

        for outcome in (snapshot, attendance):
            if isinstance(outcome, BaseException):
                raise self._failure(pay_period.id, outcome) from outcome

        return snapshot, attendance

    async def _compute(
        self, snapshot: StagingSnapshot, attendance: AttendanceData
    ) -> PayPeriodCalculationResult:
        self._enter(StagingStage.COMPUTING, COMPUTE_MESSAGE)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, self.engine.calculate_pay_period, snapshot, attendance
            )
        except Exception as e:
            raise self._failure(snapshot.pay_period.id, e) from e

    async def _commit(
        self,
        snapshot: StagingSnapshot,
        calculation: PayPeriodCalculationResult,
    ) -> PayslipData:
        self._enter(StagingStage.COMMITTING, COMMIT_MESSAGE)

        payroll_by_employee = {p.employee_id: p.id for p in snapshot.payrolls}
        commit_service = CommitService(self.session)
        try:
            candidates = BreakdownBuilder.build_candidates(
                calculation.calculated_amounts, payroll_by_employee
            )
            await asyncio.wait_for(
                commit_service.upsert_breakdowns(candidates),
                timeout=self.settings.stage_timeout_seconds,
            )
            # Read back before committing
            rows = await commit_service.get_breakdowns(p.id for p in snapshot.payrolls)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            raise self._failure(snapshot.pay_period.id, e) from e

        breakdowns = [BreakdownRecord.from_model(row) for row in rows]
        earnings, deductions = BreakdownBuilder.referenced_payheads(
            snapshot.payheads, (b.payhead_id for b in breakdowns)
        )

        return PayslipData(
            pay_period=snapshot.pay_period,
            payrolls=list(snapshot.payrolls),
            breakdowns=breakdowns,
            employees=list(snapshot.employees),
            earnings=earnings,
            deductions=deductions,
            calculated_amounts=calculation.calculated_amounts,
            errors={eid: r.errors for eid, r in calculation.results.items() if not r.success},
        )

    def _enter(self, stage: StagingStage, message: str) -> None:
        self.state.advance(stage)
        if self.progress is None:
            return
        try:
            self.progress(message)
        except Exception:
            logger.exception("Progress callback failed for %r", message)

    def _failure(self, pay_period_id: int, cause: BaseException) -> StageFailure:
        stage = self.state.fail()
        logger.error(
            "Staging pay period %s failed during %s: %s",
            pay_period_id,
            stage.value,
            cause,
        )
        # Stage names reported to callers: fetch, compute, commit
        return StageFailure(_STAGE_NAMES[stage], pay_period_id, cause)


_STAGE_NAMES = {
    StagingStage.FETCHING: "fetch",
    StagingStage.COMPUTING: "compute",
    StagingStage.COMMITTING: "commit",
}
