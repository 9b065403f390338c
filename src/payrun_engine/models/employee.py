"""Employee and organisational reference models.

These tables are owned by the employee management subsystem; the engine only
reads them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payrun_engine.models.benefits import EmployeeBenefit


class Department(Base, TimestampMixin):
    """Department reference."""

    __tablename__ = "department"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class JobClass(Base, TimestampMixin):
    """Job class (position) reference."""

    __tablename__ = "job_class"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    pay_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)


class SalaryGrade(Base, TimestampMixin):
    """Salary grade holding the configured basic salary."""

    __tablename__ = "salary_grade"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("department.id"), nullable=True
    )
    job_class_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("job_class.id"), nullable=True
    )
    salary_grade_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("salary_grade.id"), nullable=True
    )
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    is_regular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    department: Mapped[Department | None] = relationship()
    job_class: Mapped[JobClass | None] = relationship()
    salary_grade: Mapped[SalaryGrade | None] = relationship()
    benefits: Mapped[list[EmployeeBenefit]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"

    @property
    def basic_salary(self) -> Decimal:
        """Configured basic salary from the salary grade."""
        if self.salary_grade is None or self.salary_grade.amount is None:
            return Decimal("0")
        return self.salary_grade.amount
