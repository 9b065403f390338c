"""Pay period, payroll, payhead and breakdown models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payrun_engine.models.employee import Employee


# ===== Pay Periods & Payrolls =====


class PayPeriod(Base, TimestampMixin):
    """Pay period (process date) covered by one pay run."""

    __tablename__ = "pay_period"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="pay_period_dates_check"),
    )

    # Relationships
    payrolls: Mapped[list[Payroll]] = relationship(back_populates="pay_period")

    @property
    def day_count(self) -> int:
        """Days between start and end, as used by the payroll_days variable."""
        return (self.end_date - self.start_date).days


class Payroll(Base, TimestampMixin):
    """One employee's payroll for a pay period."""

    __tablename__ = "payroll"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    pay_period_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pay_period.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("employee_id", "pay_period_id", name="payroll_employee_period_unique"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    pay_period: Mapped[PayPeriod] = relationship(back_populates="payrolls")
    breakdowns: Mapped[list[PayheadBreakdown]] = relationship(back_populates="payroll")


# ===== Payheads =====


class Payhead(Base, TimestampMixin):
    """Earning or deduction definition.

    ``calculation`` is one of:
    - a static formula identifier (``get_disbursement``, ``get_repayment``,
      ``get_tardiness``, ``get_contribution``)
    - an arithmetic expression over base and payhead variables
    - empty, meaning the per-employee specific amount is used
    """

    __tablename__ = "payhead"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    calculation: Mapped[str] = mapped_column(String, nullable=False, default="")
    variable: Mapped[str | None] = mapped_column(String, nullable=True)
    affected_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    system_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_overwritable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("type IN ('earning', 'deduction')", name="payhead_type_check"),
    )

    # Relationships
    specific_amounts: Mapped[list[PayheadSpecificAmount]] = relationship(
        back_populates="payhead"
    )


class PayheadSpecificAmount(Base, TimestampMixin):
    """Per-employee amount override for a payhead."""

    __tablename__ = "payhead_specific_amount"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payhead_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payhead.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("payhead_id", "employee_id", name="payhead_specific_amount_unique"),
    )

    # Relationships
    payhead: Mapped[Payhead] = relationship(back_populates="specific_amounts")


# ===== Breakdowns =====


class PayheadBreakdown(Base, TimestampMixin):
    """Committed (payroll, payhead, amount) row."""

    __tablename__ = "payhead_breakdown"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payroll_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payroll.id", ondelete="CASCADE"),
        nullable=False,
    )
    payhead_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payhead.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Cash-advance or benefit enrollment the amount came from
    link_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("payroll_id", "payhead_id", name="payhead_breakdown_payroll_payhead_unique"),
    )

    # Relationships
    payroll: Mapped[Payroll] = relationship(back_populates="breakdowns")
    payhead: Mapped[Payhead] = relationship()
