"""Stage 1: attendance logs, schedules and per-date statuses.

All attendance sources must implement the AttendanceSource protocol.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol

import httpx

from payrun_engine.calculators.types import AttendanceData, AttendanceStatus, EmployeeSchedule

logger = logging.getLogger(__name__)


class AttendanceUnavailableError(Exception):
    """Raised when the attendance subsystem cannot provide data."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class AttendanceSource(Protocol):
    """Protocol for attendance providers."""

    async def fetch(self, start_date: date, end_date: date) -> AttendanceData:
        """Attendance for the inclusive date range."""
        ...


class HttpAttendanceSource:
    """Reads attendance from the attendance subsystem's HTTP API.

    ``GET {base_url}/records?start=YYYY-MM-DD&end=YYYY-MM-DD`` returns
    ``{"attendanceLogs": [...], "employeeSchedule": [...], "statusesByDate": {...}}``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def fetch(self, start_date: date, end_date: date) -> AttendanceData:
        params = {"start": start_date.isoformat(), "end": end_date.isoformat()}
        try:
            if self._client is not None:
                response = await self._client.get(f"{self.base_url}/records", params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(f"{self.base_url}/records", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise AttendanceUnavailableError(f"Attendance request failed: {e}", e) from e
        except ValueError as e:
            raise AttendanceUnavailableError("Attendance response is not JSON", e) from e

        return parse_attendance_payload(payload)


def parse_attendance_payload(payload: Mapping[str, Any]) -> AttendanceData:
    """Convert the attendance subsystem's JSON into AttendanceData."""
    if not isinstance(payload, Mapping):
        raise AttendanceUnavailableError("Attendance payload must be an object")

    logs = list(payload.get("attendanceLogs") or [])
    schedules = [
        _parse_schedule(entry)
        for entry in payload.get("employeeSchedule") or []
        if entry.get("employee_id") is not None
    ]

    statuses_by_date: dict[date, dict[int, AttendanceStatus]] = {}
    for day, by_employee in (payload.get("statusesByDate") or {}).items():
        try:
            key = date.fromisoformat(str(day)[:10])
        except ValueError:
            logger.warning("Ignoring attendance statuses for invalid date %r", day)
            continue
        statuses_by_date[key] = {
            int(employee_id): _parse_status(status)
            for employee_id, status in (by_employee or {}).items()
        }

    return AttendanceData(logs=logs, schedules=schedules, statuses_by_date=statuses_by_date)


def _parse_schedule(entry: Mapping[str, Any]) -> EmployeeSchedule:
    batch = entry.get("ref_batch_schedules") or {}
    effective = entry.get("effective_date") or entry.get("start_date")
    days = entry.get("days_json") or entry.get("days") or ()
    return EmployeeSchedule(
        employee_id=int(entry["employee_id"]),
        batch_id=entry.get("batch_id"),
        effective_date=date.fromisoformat(str(effective)[:10]) if effective else None,
        clock_in=entry.get("clock_in") or batch.get("clock_in"),
        clock_out=entry.get("clock_out") or batch.get("clock_out"),
        days=tuple(str(d) for d in days),
    )


def _parse_status(status: Mapping[str, Any] | None) -> AttendanceStatus:
    status = status or {}
    try:
        undertime = Decimal(str(status.get("undertime") or 0))
    except InvalidOperation:
        logger.warning("Ignoring invalid undertime value %r", status.get("undertime"))
        undertime = Decimal("0")
    return AttendanceStatus(undertime=undertime, status=status.get("status"))
