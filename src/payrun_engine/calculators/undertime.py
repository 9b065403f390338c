"""Tardiness/undertime aggregation over attendance statuses."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Mapping

from payrun_engine.calculators.types import AttendanceStatus, EmployeeSchedule

MINUTES_PER_HOUR = Decimal("60")


def get_undertime_total(
    statuses_by_date: Mapping[date, Mapping[int, AttendanceStatus]],
    employee_id: int,
    schedule: EmployeeSchedule | None,
    start_date: date,
    end_date: date,
) -> Decimal:
    """Total undertime minutes for an employee over [start_date, end_date].

    Returns 0 when the employee has no schedule; the caller reports that.
    Dates missing from the status map contribute nothing.
    """
    if schedule is None:
        return Decimal("0")

    total = Decimal("0")
    current = start_date
    while current <= end_date:
        status = statuses_by_date.get(current, {}).get(employee_id)
        if status is not None and status.undertime:
            total += Decimal(status.undertime)
        current += timedelta(days=1)

    return total


def get_employee_schedule(
    schedules: Iterable[EmployeeSchedule],
    employee_id: int,
    as_of: date,
) -> EmployeeSchedule | None:
    """Schedule in effect for an employee on a date.

    Picks the latest schedule whose effective date is on or before ``as_of``;
    schedules without an effective date count as always in effect.
    """
    best: EmployeeSchedule | None = None
    for schedule in schedules:
        if schedule.employee_id != employee_id:
            continue
        if schedule.effective_date is not None and schedule.effective_date > as_of:
            continue
        if best is None or (schedule.effective_date or date.min) >= (best.effective_date or date.min):
            best = schedule
    return best


def tardiness_amount(minutes: Decimal, hourly_rate: Decimal) -> Decimal:
    """Monetary tardiness deduction: minutes x (hourly rate / 60)."""
    return minutes * (hourly_rate / MINUTES_PER_HOUR)
