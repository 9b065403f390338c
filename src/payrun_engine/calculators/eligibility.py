"""Decides which payheads apply to which employees."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from payrun_engine.calculators.types import (
    AffectedDescriptor,
    DisbursementRecord,
    EmployeeRecord,
    PayheadRecord,
    RepaymentRecord,
    StaticFormula,
)

logger = logging.getLogger(__name__)


class LinkedRecordNotFoundError(LookupError):
    """Raised when a payhead needs a cash-advance record the employee lacks."""

    def __init__(self, employee_id: int, formula: StaticFormula):
        self.employee_id = employee_id
        self.formula = formula
        super().__init__(f"Employee {employee_id} has no record for '{formula.value}'")


def is_affected(employee: EmployeeRecord, affected: AffectedDescriptor) -> bool:
    """Check the affected descriptor.

    Mandatory flags win over the lists. Otherwise the payhead applies when the
    employee's department or job class is listed. With both lists empty it
    applies to everyone. ``system_only`` is not consulted.
    """
    if employee.is_regular and affected.mandatory_regular:
        return True
    if not employee.is_regular and affected.mandatory_probationary:
        return True

    if not affected.departments and not affected.job_classes:
        return True
    return (
        employee.department_id in affected.departments
        or employee.job_class_id in affected.job_classes
    )


class EligibilityFilter:
    """Payhead applicability for one pay period.

    Holds read-only lookups of pending disbursements and outstanding
    repayments keyed by employee id. When an employee has several, the oldest
    record (lowest id) is used.
    """

    def __init__(
        self,
        disbursements: Iterable[DisbursementRecord] = (),
        repayments: Iterable[RepaymentRecord] = (),
    ):
        self.disbursements: dict[int, DisbursementRecord] = {}
        for d in sorted(disbursements, key=lambda r: r.id):
            self.disbursements.setdefault(d.employee_id, d)

        self.repayments: dict[int, RepaymentRecord] = {}
        for r in sorted(repayments, key=lambda r: r.id):
            if r.remaining_balance > 0:
                self.repayments.setdefault(r.employee_id, r)

    def is_applicable(self, employee: EmployeeRecord, payhead: PayheadRecord) -> bool:
        """Whether the payhead goes through formula evaluation for the employee."""
        if payhead.is_contribution:
            return False

        if payhead.calculation == "":
            override = payhead.specific_amount_for(employee.id)
            if not override:
                return False

        if not is_affected(employee, payhead.affected):
            return False

        try:
            self.linked_record_id(employee, payhead)
        except LinkedRecordNotFoundError as e:
            logger.debug("Payhead %s skipped: %s", payhead.id, e)
            return False

        return True

    def linked_record_id(self, employee: EmployeeRecord, payhead: PayheadRecord) -> int | None:
        """Id of the cash-advance record a static payhead draws on.

        Raises:
            LinkedRecordNotFoundError: the payhead needs a record the employee lacks
        """
        formula = payhead.static_formula
        if formula is StaticFormula.CASH_ADVANCE_DISBURSEMENT:
            record = self.disbursements.get(employee.id)
            if record is None:
                raise LinkedRecordNotFoundError(employee.id, formula)
            return record.id
        if formula is StaticFormula.CASH_ADVANCE_REPAYMENT:
            record = self.repayments.get(employee.id)
            if record is None:
                raise LinkedRecordNotFoundError(employee.id, formula)
            return record.id
        return None

    def disbursement_amount(self, employee_id: int) -> Decimal | None:
        record = self.disbursements.get(employee_id)
        return record.amount if record is not None else None

    def repayment_balance(self, employee_id: int) -> Decimal | None:
        record = self.repayments.get(employee_id)
        return record.remaining_balance if record is not None else None
