"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from payrun_engine.calculators.types import PayheadType


# ============================================================================
# Staging schemas
# ============================================================================


class PayPeriodResponse(BaseModel):
    """Schema for pay period response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    start_date: date
    end_date: date


class PayrollResponse(BaseModel):
    """Schema for payroll response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    pay_period_id: int


class EmployeeResponse(BaseModel):
    """Schema for employee response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    department_id: int | None = None
    job_class_id: int | None = None
    is_regular: bool


class PayheadResponse(BaseModel):
    """Schema for payhead response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: PayheadType
    variable: str


class BreakdownResponse(BaseModel):
    """Schema for a persisted breakdown row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_id: int
    payhead_id: int
    amount: Decimal
    link_id: int | None = None
    updated_at: datetime | None = None


class VariableAmountResponse(BaseModel):
    """Schema for a computed amount before persistence."""

    model_config = ConfigDict(from_attributes=True)

    payhead_id: int | None
    variable: str
    amount: Decimal
    link_id: int | None = None


class PayslipDataResponse(BaseModel):
    """Schema for the staged payslip data set."""

    model_config = ConfigDict(from_attributes=True)

    pay_period: PayPeriodResponse
    payrolls: list[PayrollResponse]
    breakdowns: list[BreakdownResponse]
    employees: list[EmployeeResponse]
    earnings: list[PayheadResponse]
    deductions: list[PayheadResponse]
    calculated_amounts: dict[int, list[VariableAmountResponse]]
    errors: dict[int, list[str]] = Field(default_factory=dict)


class BreakdownListResponse(BaseModel):
    """Schema for listing breakdowns of a pay period."""

    pay_period_id: int
    items: list[BreakdownResponse]
    total: int


# ============================================================================
# Manual edit schemas
# ============================================================================


class BreakdownUpdate(BaseModel):
    """Schema for manually setting one payslip amount."""

    payroll_id: int = Field(gt=0)
    payhead_id: int = Field(gt=0)
    amount: Decimal = Field(max_digits=12, decimal_places=2)


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


class StageFailureResponse(BaseModel):
    """Schema for a failed staging run."""

    detail: str
    stage: str
    code: str = "STAGE_FAILURE"
