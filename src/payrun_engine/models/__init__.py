"""SQLAlchemy ORM models for the pay run engine."""

from payrun_engine.models.base import Base, TimestampMixin
from payrun_engine.models.benefits import BenefitContributionTable, BenefitPlan, EmployeeBenefit
from payrun_engine.models.cash_advance import (
    CashAdvance,
    CashAdvanceDisbursement,
    CashAdvanceRepayment,
)
from payrun_engine.models.employee import Department, Employee, JobClass, SalaryGrade
from payrun_engine.models.payroll import (
    PayPeriod,
    Payhead,
    PayheadBreakdown,
    PayheadSpecificAmount,
    Payroll,
)

__all__ = [
    "Base",
    "TimestampMixin",
    # Employees
    "Department",
    "Employee",
    "JobClass",
    "SalaryGrade",
    # Payroll
    "PayPeriod",
    "Payroll",
    "Payhead",
    "PayheadSpecificAmount",
    "PayheadBreakdown",
    # Benefits
    "BenefitPlan",
    "BenefitContributionTable",
    "EmployeeBenefit",
    # Cash advances
    "CashAdvance",
    "CashAdvanceDisbursement",
    "CashAdvanceRepayment",
]
