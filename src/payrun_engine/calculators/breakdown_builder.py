"""Turns computed amounts into breakdown rows and groups them for payslips."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from payrun_engine.calculators.types import PayheadRecord, PayheadType, VariableAmount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakdownCandidate:
    """A breakdown row before persistence."""

    payroll_id: int
    payhead_id: int
    amount: Decimal
    link_id: int | None = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.payroll_id, self.payhead_id)

    def to_values(self) -> dict[str, Any]:
        return {
            "payroll_id": self.payroll_id,
            "payhead_id": self.payhead_id,
            "amount": self.amount,
            "link_id": self.link_id,
        }


class BreakdownBuilder:
    """Builds breakdown rows keyed by (payroll, payhead).

    Rounding:
    - evaluation runs at full Decimal precision
    - amounts are rounded half-up to cents only here, right before persistence
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return Decimal(amount).quantize(BreakdownBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def build_candidates(
        calculated_amounts: Mapping[int, Iterable[VariableAmount]],
        payroll_by_employee: Mapping[int, int],
    ) -> list[BreakdownCandidate]:
        """Flatten per-employee amounts into one row per (payroll, payhead).

        A later amount for the same pair replaces the earlier one.
        """
        rows: dict[tuple[int, int], BreakdownCandidate] = {}

        for employee_id, amounts in calculated_amounts.items():
            payroll_id = payroll_by_employee.get(employee_id)
            if payroll_id is None:
                logger.warning("No payroll for employee %s; amounts dropped", employee_id)
                continue

            for va in amounts:
                if va.payhead_id is None:
                    continue
                candidate = BreakdownCandidate(
                    payroll_id=payroll_id,
                    payhead_id=va.payhead_id,
                    amount=BreakdownBuilder.round_to_cents(va.amount),
                    link_id=va.link_id,
                )
                rows.pop(candidate.key, None)
                rows[candidate.key] = candidate

        return list(rows.values())

    @staticmethod
    def referenced_payheads(
        payheads: Iterable[PayheadRecord],
        payhead_ids: Iterable[int],
    ) -> tuple[list[PayheadRecord], list[PayheadRecord]]:
        """Split the payheads referenced by breakdowns into (earnings, deductions).

        Catalogue order is preserved.
        """
        referenced = set(payhead_ids)
        used = [ph for ph in payheads if ph.id in referenced]
        earnings = [ph for ph in used if ph.type is PayheadType.EARNING]
        deductions = [ph for ph in used if ph.type is PayheadType.DEDUCTION]
        return earnings, deductions

    @staticmethod
    def sum_by_type(
        amounts: Iterable[tuple[int, Decimal]],
        payheads: Iterable[PayheadRecord],
    ) -> dict[PayheadType, Decimal]:
        """Sum (payhead_id, amount) pairs by payhead type."""
        types = {ph.id: ph.type for ph in payheads}
        totals: dict[PayheadType, Decimal] = {pt: Decimal("0") for pt in PayheadType}
        for payhead_id, amount in amounts:
            payhead_type = types.get(payhead_id)
            if payhead_type is not None:
                totals[payhead_type] += amount
        return totals
