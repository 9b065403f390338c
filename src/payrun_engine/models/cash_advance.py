"""Cash advance, disbursement and repayment models.

All three are append-only transactional records written by the cash advance
workflow; the engine reads them to compute ``get_disbursement`` and
``get_repayment``.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin


class CashAdvance(Base, TimestampMixin):
    """Cash advance request."""

    __tablename__ = "cash_advance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount_requested: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'disbursed', 'rejected')",
            name="cash_advance_status_check",
        ),
    )

    # Relationships
    disbursements: Mapped[list[CashAdvanceDisbursement]] = relationship(
        back_populates="cash_advance"
    )


class CashAdvanceDisbursement(Base, TimestampMixin):
    """Amount actually released against a cash advance."""

    __tablename__ = "cash_advance_disbursement"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cash_advance_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cash_advance.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Relationships
    cash_advance: Mapped[CashAdvance] = relationship(back_populates="disbursements")
    repayments: Mapped[list[CashAdvanceRepayment]] = relationship(
        back_populates="disbursement"
    )

    @property
    def remaining_balance(self) -> Decimal:
        """Disbursed amount minus everything repaid so far."""
        repaid = sum((r.amount_repaid for r in self.repayments), Decimal("0"))
        return self.amount - repaid


class CashAdvanceRepayment(Base, TimestampMixin):
    """Repayment applied to a disbursement."""

    __tablename__ = "cash_advance_repayment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    disbursement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cash_advance_disbursement.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount_repaid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Relationships
    disbursement: Mapped[CashAdvanceDisbursement] = relationship(back_populates="repayments")
