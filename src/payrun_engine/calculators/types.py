"""Type definitions for the staging pipeline.

Everything here is a plain, read-only value object. Stage 1 converts ORM rows
and attendance payloads into these types so that stage 2 can run on worker
threads without touching the session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


class PayheadType(str, Enum):
    """Payhead types."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class StaticFormula(str, Enum):
    """Reserved calculation identifiers computed by dedicated calculators."""

    CASH_ADVANCE_DISBURSEMENT = "get_disbursement"
    CASH_ADVANCE_REPAYMENT = "get_repayment"
    TARDINESS = "get_tardiness"
    BENEFIT_CONTRIBUTION = "get_contribution"


class EvaluationMode(str, Enum):
    """How a batch of formulas reacts to a failing formula.

    SUPPRESS: the failing payhead evaluates to 0, the rest are kept.
    STRICT: any failure discards the whole batch.
    """

    SUPPRESS = "suppress"
    STRICT = "strict"


# ===== Evaluator inputs/outputs =====


@dataclass(frozen=True)
class BaseVariables:
    """Variables available to every formula for one employee."""

    rate_p_hr: Decimal
    total_shft_hr: Decimal
    basic_salary: Decimal
    payroll_days: Decimal
    get_disbursement: Decimal = Decimal("0")
    get_repayment: Decimal = Decimal("0")
    get_tardiness: Decimal = Decimal("0")

    def as_dict(self) -> dict[str, Decimal]:
        """Return the variables as an ordered name -> value map."""
        return {
            "rate_p_hr": self.rate_p_hr,
            "total_shft_hr": self.total_shft_hr,
            "basic_salary": self.basic_salary,
            "payroll_days": self.payroll_days,
            StaticFormula.CASH_ADVANCE_DISBURSEMENT.value: self.get_disbursement,
            StaticFormula.CASH_ADVANCE_REPAYMENT.value: self.get_repayment,
            StaticFormula.TARDINESS.value: self.get_tardiness,
        }


BASE_VARIABLE_NAMES: tuple[str, ...] = (
    "rate_p_hr",
    "total_shft_hr",
    "basic_salary",
    "payroll_days",
    StaticFormula.CASH_ADVANCE_DISBURSEMENT.value,
    StaticFormula.CASH_ADVANCE_REPAYMENT.value,
    StaticFormula.TARDINESS.value,
)


@dataclass(frozen=True)
class VariableFormula:
    """A formula waiting to be evaluated."""

    payhead_id: int | None
    variable: str
    formula: str
    link_id: int | None = None


@dataclass(frozen=True)
class VariableAmount:
    """A computed amount tagged with its payhead and source record."""

    payhead_id: int | None
    variable: str
    amount: Decimal
    link_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "link_id": self.link_id,
            "payhead_id": self.payhead_id,
            "variable": self.variable,
            "amount": str(self.amount),
        }


# ===== Catalogue =====


@dataclass(frozen=True)
class AffectedDescriptor:
    """Which employees a payhead applies to.

    A payhead applies when the employee's department or job class is listed;
    with both sets empty it applies to everyone. ``system_only`` marks payheads
    the engine maintains itself (hidden from manual editing). It is carried for
    display and is not read by eligibility.
    """

    departments: frozenset[int] = frozenset()
    job_classes: frozenset[int] = frozenset()
    mandatory_regular: bool = False
    mandatory_probationary: bool = False
    system_only: bool = False

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None, system_only: bool = False) -> AffectedDescriptor:
        """Parse the stored JSON shape.

        {"mandatory": {"regular": bool, "probationary": bool},
         "department": [ids], "job_classes": [ids]}
        """
        data = data or {}
        mandatory = data.get("mandatory") or {}
        return cls(
            departments=frozenset(int(d) for d in data.get("department") or []),
            job_classes=frozenset(int(j) for j in data.get("job_classes") or []),
            mandatory_regular=bool(mandatory.get("regular", False)),
            mandatory_probationary=bool(mandatory.get("probationary", False)),
            system_only=system_only,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "mandatory": {
                "regular": self.mandatory_regular,
                "probationary": self.mandatory_probationary,
            },
            "department": sorted(self.departments),
            "job_classes": sorted(self.job_classes),
        }


@dataclass(frozen=True)
class PayheadRecord:
    """Payhead definition as seen by the engine."""

    id: int
    name: str
    type: PayheadType
    calculation: str
    variable: str
    affected: AffectedDescriptor = field(default_factory=AffectedDescriptor)
    specific_amounts: Mapping[int, Decimal] = field(default_factory=dict)  # employee_id -> amount

    @property
    def static_formula(self) -> StaticFormula | None:
        try:
            return StaticFormula(self.calculation)
        except ValueError:
            return None

    @property
    def is_contribution(self) -> bool:
        """Benefit contribution markers are never evaluated as formulas."""
        return self.calculation == StaticFormula.BENEFIT_CONTRIBUTION.value

    def specific_amount_for(self, employee_id: int) -> Decimal | None:
        return self.specific_amounts.get(employee_id)


# ===== People and periods =====


@dataclass(frozen=True)
class PayPeriodInfo:
    """Pay period boundaries."""

    id: int
    start_date: date
    end_date: date

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days


@dataclass(frozen=True)
class PayrollRecord:
    """Payroll row for one employee in the period."""

    id: int
    employee_id: int
    pay_period_id: int


@dataclass(frozen=True)
class EmployeeRecord:
    """Employee fields read by the engine."""

    id: int
    full_name: str
    department_id: int | None
    job_class_id: int | None
    basic_salary: Decimal
    hourly_rate: Decimal | None
    is_regular: bool


# ===== Cash advances =====


@dataclass(frozen=True)
class DisbursementRecord:
    """An approved cash advance waiting to be released through payroll."""

    id: int
    employee_id: int
    amount: Decimal


@dataclass(frozen=True)
class RepaymentRecord:
    """A disbursed cash advance with repayments applied so far."""

    id: int  # disbursement id
    employee_id: int
    principal: Decimal
    repayments: tuple[Decimal, ...] = ()

    @property
    def remaining_balance(self) -> Decimal:
        return self.principal - sum(self.repayments, Decimal("0"))


# ===== Benefits =====


@dataclass(frozen=True)
class ContributionBracketTable:
    """Bracket table for statutory-style contributions. Rates are percentages."""

    employee_rate: Decimal
    employer_rate: Decimal
    min_salary: Decimal | None = None
    max_salary: Decimal | None = None
    min_msc: Decimal | None = None
    max_msc: Decimal | None = None
    msc_step: Decimal | None = None
    ec_threshold: Decimal | None = None
    ec_low_rate: Decimal | None = None
    ec_high_rate: Decimal | None = None
    wisp_threshold: Decimal | None = None


@dataclass(frozen=True)
class ContributionSetting:
    """Benefit plan as seen by the contribution calculator."""

    id: int  # benefit plan id
    name: str
    deduction_id: int
    employee_rate: Decimal | None = None  # plan-level percentage
    employer_rate: Decimal | None = None
    table: ContributionBracketTable | None = None


@dataclass(frozen=True)
class BenefitEnrollment:
    """An employee's enrollment in a plan."""

    id: int
    employee_id: int
    setting: ContributionSetting


# ===== Attendance =====


@dataclass(frozen=True)
class AttendanceStatus:
    """One employee's attendance outcome for one date."""

    undertime: Decimal = Decimal("0")  # minutes
    status: str | None = None


@dataclass(frozen=True)
class EmployeeSchedule:
    """Shift schedule assignment."""

    employee_id: int
    batch_id: int | None = None
    effective_date: date | None = None
    clock_in: str | None = None
    clock_out: str | None = None
    days: tuple[str, ...] = ()


@dataclass(frozen=True)
class AttendanceData:
    """Attendance payload for a date range."""

    logs: list[dict[str, Any]] = field(default_factory=list)
    schedules: list[EmployeeSchedule] = field(default_factory=list)
    statuses_by_date: Mapping[date, Mapping[int, AttendanceStatus]] = field(default_factory=dict)


# ===== Stage 1 -> 2 payload =====


@dataclass(frozen=True)
class StagingSnapshot:
    """Unprocessed inputs for a pay period, read from persistence."""

    pay_period: PayPeriodInfo
    payrolls: list[PayrollRecord]
    employees: list[EmployeeRecord]
    payheads: list[PayheadRecord]  # catalogue order
    disbursements: list[DisbursementRecord] = field(default_factory=list)
    repayments: list[RepaymentRecord] = field(default_factory=list)
    enrollments: list[BenefitEnrollment] = field(default_factory=list)
