"""Stage 1: read the unprocessed inputs of a pay period from persistence."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payrun_engine.calculators.types import (
    AffectedDescriptor,
    BenefitEnrollment,
    ContributionBracketTable,
    ContributionSetting,
    DisbursementRecord,
    EmployeeRecord,
    PayheadRecord,
    PayheadType,
    PayPeriodInfo,
    PayrollRecord,
    RepaymentRecord,
    StagingSnapshot,
)
from payrun_engine.models import (
    BenefitContributionTable,
    BenefitPlan,
    CashAdvance,
    CashAdvanceDisbursement,
    Employee,
    EmployeeBenefit,
    Payhead,
    PayPeriod,
    Payroll,
)

logger = logging.getLogger(__name__)


class PayPeriodNotFoundError(LookupError):
    """Raised when the requested pay period does not exist."""

    def __init__(self, pay_period_id: int):
        self.pay_period_id = pay_period_id
        super().__init__(f"Pay period {pay_period_id} not found")


class PayPeriodProcessedError(Exception):
    """Raised when staging is requested for an already processed pay period."""

    def __init__(self, pay_period_id: int):
        self.pay_period_id = pay_period_id
        super().__init__(f"Pay period {pay_period_id} is already processed")


class SnapshotService:
    """Converts ORM rows into the read-only records stage 2 works on."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_pay_period(self, pay_period_id: int) -> PayPeriodInfo:
        """Load a stageable pay period.

        Raises:
            PayPeriodNotFoundError: no such pay period
            PayPeriodProcessedError: the pay period is already processed
        """
        period = await self.session.get(PayPeriod, pay_period_id)
        if period is None:
            raise PayPeriodNotFoundError(pay_period_id)
        if period.is_processed:
            raise PayPeriodProcessedError(pay_period_id)
        return PayPeriodInfo(id=period.id, start_date=period.start_date, end_date=period.end_date)

    async def fetch(self, pay_period: PayPeriodInfo) -> StagingSnapshot:
        """Read everything stage 2 needs for the pay period."""
        payrolls = await self._load_payrolls(pay_period.id)
        employee_ids = [p.employee_id for p in payrolls]

        employees = [self._to_employee_record(p.employee) for p in payrolls]
        payheads = await self.load_payheads()
        disbursements = await self._load_pending_disbursements(employee_ids)
        repayments = await self._load_outstanding_repayments(employee_ids)
        enrollments = await self._load_enrollments(employee_ids)

        logger.info(
            "Pay period %s: %d payrolls, %d payheads, %d disbursements, "
            "%d repayments, %d enrollments",
            pay_period.id,
            len(payrolls),
            len(payheads),
            len(disbursements),
            len(repayments),
            len(enrollments),
        )

        return StagingSnapshot(
            pay_period=pay_period,
            payrolls=[
                PayrollRecord(id=p.id, employee_id=p.employee_id, pay_period_id=p.pay_period_id)
                for p in payrolls
            ],
            employees=employees,
            payheads=payheads,
            disbursements=disbursements,
            repayments=repayments,
            enrollments=enrollments,
        )

    async def _load_payrolls(self, pay_period_id: int) -> list[Payroll]:
        result = await self.session.execute(
            select(Payroll)
            .where(Payroll.pay_period_id == pay_period_id)
            .options(selectinload(Payroll.employee).selectinload(Employee.salary_grade))
            .order_by(Payroll.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def load_payheads(self) -> list[PayheadRecord]:
        """Active payhead catalogue in catalogue order (ascending id)."""
        result = await self.session.execute(
            select(Payhead)
            .where(Payhead.is_active.is_(True))
            .options(selectinload(Payhead.specific_amounts))
            .order_by(Payhead.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_payhead_record(ph) for ph in result.scalars().all()]

    async def _load_pending_disbursements(
        self, employee_ids: Iterable[int]
    ) -> list[DisbursementRecord]:
        """Approved cash advances not yet released."""
        ids = list(employee_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(CashAdvance)
            .where(CashAdvance.employee_id.in_(ids), CashAdvance.status == "approved")
            .options(selectinload(CashAdvance.disbursements))
            .order_by(CashAdvance.id)
            .execution_options(populate_existing=True)
        )
        return [
            DisbursementRecord(id=ca.id, employee_id=ca.employee_id, amount=ca.amount_requested)
            for ca in result.scalars().all()
            if not ca.disbursements
        ]

    async def _load_outstanding_repayments(
        self, employee_ids: Iterable[int]
    ) -> list[RepaymentRecord]:
        """Disbursements with a positive remaining balance."""
        ids = list(employee_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(CashAdvanceDisbursement)
            .join(CashAdvance, CashAdvance.id == CashAdvanceDisbursement.cash_advance_id)
            .where(CashAdvance.employee_id.in_(ids))
            .options(
                selectinload(CashAdvanceDisbursement.repayments),
                selectinload(CashAdvanceDisbursement.cash_advance),
            )
            .order_by(CashAdvanceDisbursement.id)
            .execution_options(populate_existing=True)
        )
        return [
            RepaymentRecord(
                id=d.id,
                employee_id=d.cash_advance.employee_id,
                principal=d.amount,
                repayments=tuple(r.amount_repaid for r in d.repayments),
            )
            for d in result.scalars().all()
            if d.remaining_balance > 0
        ]

    async def _load_enrollments(self, employee_ids: Iterable[int]) -> list[BenefitEnrollment]:
        ids = list(employee_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(EmployeeBenefit)
            .join(BenefitPlan, BenefitPlan.id == EmployeeBenefit.plan_id)
            .where(
                EmployeeBenefit.employee_id.in_(ids),
                EmployeeBenefit.is_active.is_(True),
                BenefitPlan.is_active.is_(True),
            )
            .options(selectinload(EmployeeBenefit.plan).selectinload(BenefitPlan.contribution_tables))
            .order_by(EmployeeBenefit.id)
            .execution_options(populate_existing=True)
        )
        return [
            BenefitEnrollment(
                id=eb.id,
                employee_id=eb.employee_id,
                setting=self._to_contribution_setting(eb.plan),
            )
            for eb in result.scalars().all()
        ]

    @staticmethod
    def _to_employee_record(employee: Employee) -> EmployeeRecord:
        return EmployeeRecord(
            id=employee.id,
            full_name=employee.full_name,
            department_id=employee.department_id,
            job_class_id=employee.job_class_id,
            basic_salary=employee.basic_salary,
            hourly_rate=employee.hourly_rate,
            is_regular=employee.is_regular,
        )

    @staticmethod
    def _to_payhead_record(payhead: Payhead) -> PayheadRecord:
        return PayheadRecord(
            id=payhead.id,
            name=payhead.name,
            type=PayheadType(payhead.type),
            calculation=(payhead.calculation or "").strip(),
            variable=payhead.variable or "",
            affected=AffectedDescriptor.from_json(payhead.affected_json, payhead.system_only),
            specific_amounts={sa.employee_id: sa.amount for sa in payhead.specific_amounts},
        )

    @staticmethod
    def _to_contribution_setting(plan: BenefitPlan) -> ContributionSetting:
        table: BenefitContributionTable | None = (
            plan.contribution_tables[0] if plan.contribution_tables else None
        )
        bracket = None
        if table is not None:
            bracket = ContributionBracketTable(
                employee_rate=table.employee_rate,
                employer_rate=table.employer_rate,
                min_salary=table.min_salary,
                max_salary=table.max_salary,
                min_msc=table.min_msc,
                max_msc=table.max_msc,
                msc_step=table.msc_step,
                ec_threshold=table.ec_threshold,
                ec_low_rate=table.ec_low_rate,
                ec_high_rate=table.ec_high_rate,
                wisp_threshold=table.wisp_threshold,
            )
        return ContributionSetting(
            id=plan.id,
            name=plan.name,
            deduction_id=plan.deduction_id,
            employee_rate=plan.employee_contribution,
            employer_rate=plan.employer_contribution,
            table=bracket,
        )
