"""Integration tests for the staging pipeline.

Runs fetch, compute and commit against a seeded SQLite database.
"""

from datetime import date
from decimal import Decimal, InvalidOperation

import pytest
from sqlalchemy import select

from payrun_engine.calculators.breakdown_builder import BreakdownBuilder
from payrun_engine.calculators.types import PayheadType
from payrun_engine.models import Payhead, PayheadBreakdown, PayheadSpecificAmount, SalaryGrade
from payrun_engine.services.attendance import AttendanceUnavailableError
from payrun_engine.services.commit_service import BreakdownTargetNotFoundError, CommitService
from payrun_engine.services.snapshot_service import (
    PayPeriodNotFoundError,
    PayPeriodProcessedError,
    SnapshotService,
)
from payrun_engine.services.staging_service import (
    COMMIT_MESSAGE,
    COMPUTE_MESSAGE,
    FETCH_MESSAGE,
    PayrollStagingPipeline,
    StageFailure,
)
from payrun_engine.services.state_machine import StagingStage
from tests.factories import count_breakdowns


def rows_by_key(breakdowns) -> dict[tuple[int, int], tuple[Decimal, int | None]]:
    return {(b.payroll_id, b.payhead_id): (b.amount, b.link_id) for b in breakdowns}


@pytest.fixture
def pipeline(session, attendance_source, test_settings) -> PayrollStagingPipeline:
    return PayrollStagingPipeline(session, attendance_source, test_settings)


class TestStaging:
    """Test a full staging run."""

    async def test_writes_one_row_per_applicable_payhead(self, pipeline, staging_data):
        payslips = await pipeline.run(staging_data.pay_period_id)

        assert rows_by_key(payslips.breakdowns) == {
            (1, 1): (Decimal("20000.00"), None),
            (1, 2): (Decimal("5000.00"), 1),
            (1, 3): (Decimal("600.00"), 1),
            (1, 4): (Decimal("15.00"), None),
            (2, 1): (Decimal("15000.00"), None),
            (2, 4): (Decimal("0.00"), None),
            (2, 5): (Decimal("2000.00"), 1),
        }
        assert pipeline.state.stage is StagingStage.COMPLETED

    async def test_employee_without_advance_gets_no_disbursement_row(
        self, pipeline, session, staging_data
    ):
        await pipeline.run(staging_data.pay_period_id)

        rows = await CommitService(session).get_breakdowns([staging_data.probationary_payroll_id])

        assert staging_data.cash_advance_payhead_id not in {r.payhead_id for r in rows}

    async def test_payslip_data(self, pipeline, staging_data):
        payslips = await pipeline.run(staging_data.pay_period_id)

        assert payslips.pay_period.id == staging_data.pay_period_id
        assert [p.id for p in payslips.payrolls] == [1, 2]
        assert [e.full_name for e in payslips.employees] == ["Ana Reyes", "Ben Cruz"]
        assert [p.id for p in payslips.earnings] == [1, 2]
        assert [p.id for p in payslips.deductions] == [3, 4, 5]
        assert set(payslips.calculated_amounts) == {1, 2}
        assert payslips.errors == {}

    async def test_totals_by_payroll(self, pipeline, staging_data):
        payslips = await pipeline.run(staging_data.pay_period_id)

        totals = payslips.totals_by_payroll()

        assert totals[1] == {
            PayheadType.EARNING: Decimal("25000.00"),
            PayheadType.DEDUCTION: Decimal("615.00"),
        }
        assert totals[2] == {
            PayheadType.EARNING: Decimal("15000.00"),
            PayheadType.DEDUCTION: Decimal("2000.00"),
        }

    async def test_attendance_requested_for_period(self, pipeline, attendance_source, staging_data):
        await pipeline.run(staging_data.pay_period_id)

        assert attendance_source.calls == [(date(2024, 1, 1), date(2024, 1, 15))]

    async def test_inactive_payhead_ignored(self, pipeline, session, staging_data):
        await pipeline.run(staging_data.pay_period_id)

        result = await session.execute(
            select(PayheadBreakdown).where(PayheadBreakdown.payhead_id == 6)
        )
        assert result.scalars().all() == []

    async def test_oversized_formula_result_fails_only_the_formula_batch(
        self, pipeline, session, staging_data
    ):
        payhead = await session.get(Payhead, staging_data.basic_salary_payhead_id)
        payhead.calculation = "10^30"
        await session.commit()
        session.expunge_all()

        payslips = await pipeline.run(staging_data.pay_period_id)

        assert pipeline.state.stage is StagingStage.COMPLETED
        assert set(payslips.errors) == {1, 2}
        rows = rows_by_key(payslips.breakdowns)
        assert staging_data.basic_salary_payhead_id not in {payhead_id for _, payhead_id in rows}
        assert (1, staging_data.philhealth_payhead_id) in rows


class TestIdempotentRerun:
    """Re-staging the same period overwrites rows."""

    async def test_rerun_updates_amounts_without_duplicates(
        self, session, attendance_source, test_settings, staging_data
    ):
        await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )
        assert await count_breakdowns(session) == 7

        grade = await session.get(SalaryGrade, staging_data.regular_grade_id)
        grade.amount = Decimal("25000")
        await session.commit()

        payslips = await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )

        assert await count_breakdowns(session) == 7
        rows = rows_by_key(payslips.breakdowns)
        assert rows[(1, 1)] == (Decimal("25000.00"), None)
        assert rows[(1, 3)] == (Decimal("750.00"), 1)

    async def test_rerun_with_same_inputs_is_stable(
        self, session, attendance_source, test_settings, staging_data
    ):
        first = await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )
        second = await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )

        assert rows_by_key(first.breakdowns) == rows_by_key(second.breakdowns)
        assert [b.id for b in first.breakdowns] == [b.id for b in second.breakdowns]

    async def test_override_applies_on_rerun(
        self, session, attendance_source, test_settings, staging_data
    ):
        await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )

        session.add(
            PayheadSpecificAmount(
                payhead_id=staging_data.basic_salary_payhead_id,
                employee_id=staging_data.probationary_employee_id,
                amount=Decimal("16500.50"),
            )
        )
        await session.commit()
        session.expunge_all()

        payslips = await PayrollStagingPipeline(session, attendance_source, test_settings).run(
            staging_data.pay_period_id
        )

        assert rows_by_key(payslips.breakdowns)[(2, 1)] == (Decimal("16500.50"), None)
        assert await count_breakdowns(session) == 7


class TestStageFailures:
    """A failing stage commits nothing."""

    async def test_attendance_failure_fails_fetch(
        self, pipeline, session, attendance_source, staging_data
    ):
        attendance_source.error = AttendanceUnavailableError("attendance service down")

        with pytest.raises(StageFailure) as exc_info:
            await pipeline.run(staging_data.pay_period_id)

        assert exc_info.value.stage == "fetch"
        assert isinstance(exc_info.value.cause, AttendanceUnavailableError)
        assert pipeline.state.stage is StagingStage.FAILED
        assert await count_breakdowns(session) == 0

    async def test_commit_failure_rolls_back(self, pipeline, session, staging_data, monkeypatch):
        original = CommitService.upsert_breakdowns

        async def write_then_fail(self, candidates):
            await original(self, candidates)
            raise RuntimeError("connection lost")

        monkeypatch.setattr(CommitService, "upsert_breakdowns", write_then_fail)

        with pytest.raises(StageFailure) as exc_info:
            await pipeline.run(staging_data.pay_period_id)

        assert exc_info.value.stage == "commit"
        assert await count_breakdowns(session) == 0

    async def test_candidate_build_failure_fails_commit(
        self, pipeline, session, staging_data, monkeypatch
    ):
        def reject(calculated, payroll_by_employee):
            raise InvalidOperation("amount does not fit")

        monkeypatch.setattr(BreakdownBuilder, "build_candidates", staticmethod(reject))

        with pytest.raises(StageFailure) as exc_info:
            await pipeline.run(staging_data.pay_period_id)

        assert exc_info.value.stage == "commit"
        assert isinstance(exc_info.value.cause, InvalidOperation)
        assert pipeline.state.stage is StagingStage.FAILED
        assert await count_breakdowns(session) == 0

    async def test_read_back_failure_commits_nothing(
        self, pipeline, session, staging_data, monkeypatch
    ):
        async def fail_read(self, payroll_ids):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(CommitService, "get_breakdowns", fail_read)

        with pytest.raises(StageFailure) as exc_info:
            await pipeline.run(staging_data.pay_period_id)

        assert exc_info.value.stage == "commit"
        assert pipeline.state.stage is StagingStage.FAILED
        assert await count_breakdowns(session) == 0

    async def test_compute_failure(self, pipeline, session, staging_data, monkeypatch):
        def explode(snapshot, attendance):
            raise RuntimeError("engine crashed")

        monkeypatch.setattr(pipeline.engine, "calculate_pay_period", explode)

        with pytest.raises(StageFailure) as exc_info:
            await pipeline.run(staging_data.pay_period_id)

        assert exc_info.value.stage == "compute"
        assert await count_breakdowns(session) == 0

    async def test_unknown_pay_period(self, pipeline, staging_data):
        with pytest.raises(PayPeriodNotFoundError):
            await pipeline.run(999)

    async def test_processed_pay_period(self, pipeline, session, staging_data):
        with pytest.raises(PayPeriodProcessedError):
            await pipeline.run(staging_data.processed_pay_period_id)

        assert await count_breakdowns(session) == 0


class TestProgress:
    """Test progress reporting."""

    async def test_one_message_per_stage(self, session, attendance_source, test_settings, staging_data):
        messages: list[str] = []
        pipeline = PayrollStagingPipeline(
            session, attendance_source, test_settings, progress=messages.append
        )

        await pipeline.run(staging_data.pay_period_id)

        assert messages == [FETCH_MESSAGE, COMPUTE_MESSAGE, COMMIT_MESSAGE]

    async def test_failing_callback_does_not_abort(
        self, session, attendance_source, test_settings, staging_data
    ):
        def broken(message: str) -> None:
            raise ValueError("display closed")

        pipeline = PayrollStagingPipeline(session, attendance_source, test_settings, progress=broken)

        payslips = await pipeline.run(staging_data.pay_period_id)

        assert len(payslips.breakdowns) == 7


class TestSnapshotService:
    """Test stage 1 reads."""

    async def test_fetch(self, session, staging_data):
        service = SnapshotService(session)
        period = await service.get_pay_period(staging_data.pay_period_id)

        snapshot = await service.fetch(period)

        assert [e.basic_salary for e in snapshot.employees] == [Decimal("20000"), Decimal("15000")]
        assert [(d.id, d.employee_id, d.amount) for d in snapshot.disbursements] == [
            (1, 1, Decimal("5000"))
        ]
        (repayment,) = snapshot.repayments
        assert repayment.id == staging_data.disbursement_id
        assert repayment.remaining_balance == Decimal("2000")
        (enrollment,) = snapshot.enrollments
        assert enrollment.setting.deduction_id == staging_data.philhealth_payhead_id
        assert enrollment.setting.table is None
        assert [p.id for p in snapshot.payheads] == [1, 2, 3, 4, 5]


class TestManualUpsert:
    """Test single-row edits."""

    async def test_update_keeps_link(self, pipeline, session, staging_data):
        await pipeline.run(staging_data.pay_period_id)

        row = await CommitService(session).upsert_breakdown(1, 2, Decimal("4500.555"))
        await session.commit()

        assert row.amount == Decimal("4500.56")
        assert row.link_id == 1
        assert await count_breakdowns(session) == 7

    async def test_creates_missing_row(self, session, staging_data):
        row = await CommitService(session).upsert_breakdown(2, 3, Decimal("120"))
        await session.commit()

        assert row.amount == Decimal("120.00")
        assert row.link_id is None
        assert await count_breakdowns(session) == 1

    async def test_unknown_payroll(self, session, staging_data):
        with pytest.raises(BreakdownTargetNotFoundError):
            await CommitService(session).upsert_breakdown(99, 1, Decimal("1"))
