"""Benefit plan, contribution table and enrollment models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payrun_engine.models.employee import Employee
    from payrun_engine.models.payroll import Payhead


class BenefitPlan(Base, TimestampMixin):
    """Benefit plan linked to a system-only deduction payhead.

    ``employee_contribution`` and ``employer_contribution`` are percentages used
    when the plan has no contribution table.
    """

    __tablename__ = "benefit_plan"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    plan_type: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_contribution: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    employer_contribution: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    deduction_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payhead.id"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    deduction: Mapped[Payhead] = relationship()
    contribution_tables: Mapped[list[BenefitContributionTable]] = relationship(
        back_populates="plan",
        order_by="BenefitContributionTable.id",
    )


class BenefitContributionTable(Base, TimestampMixin):
    """Bracket table for statutory-style contributions. Rates are percentages."""

    __tablename__ = "benefit_contribution_table"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("benefit_plan.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_rate: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    employer_rate: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    min_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    min_msc: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_msc: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    msc_step: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    ec_threshold: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    ec_low_rate: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    ec_high_rate: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    wisp_threshold: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Relationships
    plan: Mapped[BenefitPlan] = relationship(back_populates="contribution_tables")


class EmployeeBenefit(Base, TimestampMixin):
    """Employee enrollment in a benefit plan."""

    __tablename__ = "employee_benefit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("benefit_plan.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "plan_id", name="employee_benefit_unique"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="benefits")
    plan: Mapped[BenefitPlan] = relationship()
