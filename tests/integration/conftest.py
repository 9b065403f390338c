"""Integration test fixtures with a seeded SQLite database."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.api.app import create_app
from payrun_engine.api.dependencies import get_app_settings, get_attendance_source, get_db_session
from payrun_engine.calculators.types import AttendanceData, AttendanceStatus, EmployeeSchedule
from payrun_engine.models import (
    BenefitPlan,
    CashAdvance,
    CashAdvanceDisbursement,
    CashAdvanceRepayment,
    Department,
    Employee,
    EmployeeBenefit,
    JobClass,
    Payhead,
    PayPeriod,
    Payroll,
    SalaryGrade,
)
from tests.factories import EVERYONE, FakeAttendanceSource

ALL_DEPARTMENTS = {"mandatory": {"regular": False, "probationary": False}, "department": [], "job_classes": []}


@dataclass(frozen=True)
class StagingData:
    """Ids of the seeded rows."""

    pay_period_id: int = 1
    processed_pay_period_id: int = 2
    regular_employee_id: int = 1
    probationary_employee_id: int = 2
    regular_payroll_id: int = 1
    probationary_payroll_id: int = 2
    basic_salary_payhead_id: int = 1
    cash_advance_payhead_id: int = 2
    philhealth_payhead_id: int = 3
    tardiness_payhead_id: int = 4
    repayment_payhead_id: int = 5
    regular_grade_id: int = 1
    enrollment_id: int = 1
    approved_advance_id: int = 1
    disbursement_id: int = 1


@pytest.fixture
async def staging_data(session: AsyncSession) -> StagingData:
    """Seed one pay period with a regular and a probationary employee.

    Regular employee: basic salary 20,000, hourly 30, PhilHealth enrollment,
    approved 5,000 cash advance awaiting disbursement, 30 minutes undertime.
    Probationary employee: basic salary 15,000, no schedule, a disbursed 3,000
    advance with 1,000 repaid, and a rejected advance.
    """
    data = StagingData()

    session.add_all(
        [
            Department(id=1, name="Operations"),
            JobClass(id=1, name="Clerk", pay_rate=Decimal("30")),
            SalaryGrade(id=1, name="SG-10", amount=Decimal("20000")),
            SalaryGrade(id=2, name="SG-5", amount=Decimal("15000")),
            PayPeriod(id=1, start_date=date(2024, 1, 1), end_date=date(2024, 1, 15)),
            PayPeriod(id=2, start_date=date(2023, 12, 16), end_date=date(2023, 12, 31), is_processed=True),
        ]
    )
    await session.flush()

    session.add_all(
        [
            Employee(
                id=1,
                first_name="Ana",
                last_name="Reyes",
                department_id=1,
                job_class_id=1,
                salary_grade_id=1,
                hourly_rate=Decimal("30"),
                is_regular=True,
            ),
            Employee(
                id=2,
                first_name="Ben",
                last_name="Cruz",
                department_id=1,
                job_class_id=1,
                salary_grade_id=2,
                is_regular=False,
            ),
        ]
    )
    await session.flush()

    session.add_all(
        [
            Payroll(id=1, employee_id=1, pay_period_id=1),
            Payroll(id=2, employee_id=2, pay_period_id=1),
            Payhead(
                id=1,
                name="Basic Salary",
                type="earning",
                calculation="basic_salary",
                variable="basic_pay",
                affected_json=EVERYONE.to_json(),
            ),
            Payhead(
                id=2,
                name="Cash Advance",
                type="earning",
                calculation="get_disbursement",
                variable="cash_advance",
                affected_json=ALL_DEPARTMENTS,
                system_only=True,
            ),
            Payhead(
                id=3,
                name="PhilHealth Contribution",
                type="deduction",
                calculation="get_contribution",
                variable="philhealth",
                affected_json=EVERYONE.to_json(),
                system_only=True,
            ),
            Payhead(
                id=4,
                name="Tardiness",
                type="deduction",
                calculation="get_tardiness",
                variable="tardiness",
                affected_json=EVERYONE.to_json(),
            ),
            Payhead(
                id=5,
                name="Cash Advance Repayment",
                type="deduction",
                calculation="get_repayment",
                variable="cash_advance_repayment",
                affected_json=ALL_DEPARTMENTS,
                system_only=True,
            ),
            Payhead(
                id=6,
                name="Retired Allowance",
                type="earning",
                calculation="1000",
                variable="retired_allowance",
                affected_json=EVERYONE.to_json(),
                is_active=False,
            ),
        ]
    )
    await session.flush()

    session.add_all(
        [
            BenefitPlan(
                id=1,
                name="PhilHealth",
                plan_type="statutory",
                employee_contribution=Decimal("3"),
                employer_contribution=Decimal("3"),
                deduction_id=3,
            ),
            CashAdvance(id=1, employee_id=1, amount_requested=Decimal("5000"), status="approved"),
            CashAdvance(id=2, employee_id=2, amount_requested=Decimal("3000"), status="disbursed"),
            CashAdvance(id=3, employee_id=2, amount_requested=Decimal("9000"), status="rejected"),
        ]
    )
    await session.flush()

    session.add_all(
        [
            EmployeeBenefit(id=1, employee_id=1, plan_id=1),
            CashAdvanceDisbursement(id=1, cash_advance_id=2, amount=Decimal("3000")),
        ]
    )
    await session.flush()

    session.add(CashAdvanceRepayment(id=1, disbursement_id=1, amount_repaid=Decimal("1000")))
    await session.commit()
    session.expunge_all()

    return data


@pytest.fixture
def attendance_source() -> FakeAttendanceSource:
    """30 minutes of undertime for the regular employee; no schedule for the other."""
    return FakeAttendanceSource(
        AttendanceData(
            schedules=[EmployeeSchedule(employee_id=1, batch_id=1, effective_date=date(2023, 1, 1))],
            statuses_by_date={
                date(2024, 1, 5): {1: AttendanceStatus(undertime=Decimal("20"), status="late")},
                date(2024, 1, 9): {1: AttendanceStatus(undertime=Decimal("10"), status="late")},
            },
        )
    )


@pytest.fixture
async def client(
    session: AsyncSession,
    attendance_source: FakeAttendanceSource,
    test_settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client bound to the test session."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_attendance_source] = lambda: attendance_source
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
