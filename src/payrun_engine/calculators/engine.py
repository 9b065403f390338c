"""Payroll calculation engine - per-employee payhead computation."""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal

from payrun_engine.calculators.contribution import ContributionCalculator
from payrun_engine.calculators.eligibility import EligibilityFilter
from payrun_engine.calculators.expression import calculate_all_payheads, find_forward_references
from payrun_engine.calculators.types import (
    AttendanceData,
    BaseVariables,
    BenefitEnrollment,
    EmployeeRecord,
    EvaluationMode,
    PayheadRecord,
    PayPeriodInfo,
    StagingSnapshot,
    VariableAmount,
    VariableFormula,
)
from payrun_engine.calculators.undertime import (
    get_employee_schedule,
    get_undertime_total,
    tardiness_amount,
)
from payrun_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class CalculationResult:
    """Result of calculating payheads for one employee."""

    employee_id: int
    amounts: list[VariableAmount]
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


@dataclass
class PayPeriodCalculationResult:
    """Result of calculating an entire pay period."""

    pay_period_id: int
    results: dict[int, CalculationResult]  # employee_id -> result

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results.values() if not r.success)

    @property
    def calculated_amounts(self) -> dict[int, list[VariableAmount]]:
        """Stage 2 -> 3 payload: employee_id -> computed amounts."""
        return {employee_id: list(r.amounts) for employee_id, r in self.results.items()}


@dataclass(frozen=True)
class PayPeriodContext:
    """Read-only lookups shared by every employee of one pay period."""

    pay_period: PayPeriodInfo
    payheads: list[PayheadRecord]
    eligibility: EligibilityFilter
    enrollments: dict[int, list[BenefitEnrollment]]
    attendance: AttendanceData
    basic_salary_formula: str | None

    @classmethod
    def build(
        cls,
        snapshot: StagingSnapshot,
        attendance: AttendanceData,
        basic_salary_payhead_id: int,
    ) -> PayPeriodContext:
        enrollments: dict[int, list[BenefitEnrollment]] = defaultdict(list)
        for enrollment in snapshot.enrollments:
            enrollments[enrollment.employee_id].append(enrollment)

        basic_salary = next(
            (ph for ph in snapshot.payheads if ph.id == basic_salary_payhead_id),
            None,
        )
        formula = None
        if basic_salary is not None and basic_salary.calculation and basic_salary.static_formula is None:
            formula = basic_salary.calculation

        return cls(
            pay_period=snapshot.pay_period,
            payheads=list(snapshot.payheads),
            eligibility=EligibilityFilter(snapshot.disbursements, snapshot.repayments),
            enrollments=dict(enrollments),
            attendance=attendance,
            basic_salary_formula=formula,
        )


class PayrollEngine:
    """Computes every employee's payhead amounts for a pay period.

    Calculation order per employee:
    1) Base variables (rate, shift hours, basic salary, period days,
       cash-advance amounts, tardiness)
    2) Benefit contributions for every enrolled plan
    3) Eligible payheads in catalogue order, each result visible to the
       formulas after it (strict mode: one failure empties the batch)

    Employees are independent and run on a thread pool; they only read the
    shared PayPeriodContext.
    """

    def __init__(self, settings: Settings | None = None, max_workers: int | None = None):
        self.settings = settings or get_settings()
        self.max_workers = max_workers or self.settings.max_workers

    def calculate_pay_period(
        self,
        snapshot: StagingSnapshot,
        attendance: AttendanceData,
    ) -> PayPeriodCalculationResult:
        """Calculate amounts for all employees in the snapshot."""
        ctx = PayPeriodContext.build(
            snapshot, attendance, self.settings.basic_salary_payhead_id
        )

        for payhead_id, names in find_forward_references(ctx.payheads).items():
            logger.error(
                "Configuration error: payhead %s references %s, declared later in "
                "catalogue order; its formula cannot be evaluated",
                payhead_id,
                ", ".join(sorted(names)),
            )

        employees = list(snapshot.employees)
        results: dict[int, CalculationResult] = {}
        if employees:
            workers = max(1, min(self.max_workers, len(employees)))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                for result in pool.map(lambda emp: self._calculate_employee_safely(emp, ctx), employees):
                    results[result.employee_id] = result

        return PayPeriodCalculationResult(pay_period_id=snapshot.pay_period.id, results=results)

    def _calculate_employee_safely(
        self, employee: EmployeeRecord, ctx: PayPeriodContext
    ) -> CalculationResult:
        try:
            return self.calculate_employee(employee, ctx)
        except Exception as e:
            logger.exception("Unexpected error calculating employee %s", employee.id)
            return CalculationResult(
                employee_id=employee.id,
                amounts=[],
                errors=[f"Unexpected error: {str(e)}"],
            )

    def calculate_employee(
        self, employee: EmployeeRecord, ctx: PayPeriodContext
    ) -> CalculationResult:
        """Calculate payhead amounts for a single employee."""
        errors: list[str] = []
        base = self.build_base_variables(employee, ctx)

        contributions = self._calculate_contributions(employee, base, ctx)

        formulas = self._applicable_formulas(employee, ctx)
        calculated = calculate_all_payheads(base, formulas, EvaluationMode.STRICT)
        if formulas and not calculated:
            errors.append("Formula evaluation failed; payhead batch discarded")
            logger.error(
                "Employee %s: payhead batch discarded after evaluation failure", employee.id
            )

        amounts = [ca for ca in calculated if ca.payhead_id]
        amounts.extend(contributions)

        return CalculationResult(employee_id=employee.id, amounts=amounts, errors=errors)

    def build_base_variables(
        self, employee: EmployeeRecord, ctx: PayPeriodContext
    ) -> BaseVariables:
        """Base variables available to every formula of this employee."""
        period = ctx.pay_period
        rate = employee.hourly_rate or self.settings.default_hourly_rate

        schedule = get_employee_schedule(ctx.attendance.schedules, employee.id, period.end_date)
        if schedule is None:
            logger.warning("No schedule found for employee %s; tardiness is 0", employee.id)
        minutes = get_undertime_total(
            ctx.attendance.statuses_by_date,
            employee.id,
            schedule,
            period.start_date,
            period.end_date,
        )

        return BaseVariables(
            rate_p_hr=rate,
            total_shft_hr=self.settings.standard_shift_hours,
            basic_salary=employee.basic_salary,
            payroll_days=Decimal(period.day_count),
            get_disbursement=ctx.eligibility.disbursement_amount(employee.id) or Decimal("0"),
            get_repayment=ctx.eligibility.repayment_balance(employee.id) or Decimal("0"),
            get_tardiness=tardiness_amount(minutes, rate),
        )

    def _applicable_formulas(
        self, employee: EmployeeRecord, ctx: PayPeriodContext
    ) -> list[VariableFormula]:
        """Eligible payheads in catalogue order, overrides replacing formulas."""
        formulas: list[VariableFormula] = []
        for ph in ctx.payheads:
            if not ctx.eligibility.is_applicable(employee, ph):
                continue
            override = ph.specific_amount_for(employee.id)
            formulas.append(
                VariableFormula(
                    payhead_id=ph.id,
                    variable=ph.variable,
                    formula=str(override) if override is not None else ph.calculation,
                    link_id=ctx.eligibility.linked_record_id(employee, ph),
                )
            )
        return formulas

    def _contribution_salary(self, base: BaseVariables, ctx: PayPeriodContext) -> Decimal:
        """Salary the contribution tables are applied to.

        The basic salary payhead's formula evaluated against the base
        variables; the configured basic salary when there is no such payhead.
        """
        if ctx.basic_salary_formula is None:
            return base.basic_salary
        result = calculate_all_payheads(
            base,
            [VariableFormula(payhead_id=None, variable="", formula=ctx.basic_salary_formula)],
            EvaluationMode.SUPPRESS,
        )
        return result[0].amount

    def _calculate_contributions(
        self,
        employee: EmployeeRecord,
        base: BaseVariables,
        ctx: PayPeriodContext,
    ) -> list[VariableAmount]:
        enrollments = ctx.enrollments.get(employee.id, [])
        if not enrollments:
            return []

        salary = self._contribution_salary(base, ctx)
        return [
            VariableAmount(
                payhead_id=enrollment.setting.deduction_id,
                variable=enrollment.setting.name,
                amount=ContributionCalculator(enrollment.setting).get_contribution(salary),
                link_id=enrollment.id,
            )
            for enrollment in enrollments
        ]
