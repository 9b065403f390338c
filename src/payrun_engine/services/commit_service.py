"""Idempotent commit service for payhead breakdowns."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.breakdown_builder import BreakdownBuilder, BreakdownCandidate
from payrun_engine.models import Payhead, PayheadBreakdown, Payroll

logger = logging.getLogger(__name__)

CONFLICT_KEY = ["payroll_id", "payhead_id"]


class BreakdownTargetNotFoundError(LookupError):
    """Raised when a manual edit names a payroll or payhead that does not exist."""

    def __init__(self, payroll_id: int, payhead_id: int):
        self.payroll_id = payroll_id
        self.payhead_id = payhead_id
        super().__init__(f"Payroll {payroll_id} or payhead {payhead_id} not found")


class CommitService:
    """Service for idempotent breakdown persistence.

    Key invariants:
    1. One breakdown per (payroll_id, payhead_id) (enforced by unique constraint)
    2. Re-running overwrites amount and link_id, never duplicates
    3. Duplicates within one payload collapse to the last one
    4. The caller owns the transaction; nothing here commits
    """

    BATCH_SIZE = 200

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(PayheadBreakdown)
        if dialect == "sqlite":
            return sqlite.insert(PayheadBreakdown)
        raise NotImplementedError(f"Breakdown upsert is not supported on {dialect}")

    async def upsert_breakdowns(self, candidates: Iterable[BreakdownCandidate]) -> int:
        """Insert or update breakdown rows keyed by (payroll_id, payhead_id).

        Returns count of distinct rows written.
        """
        rows: dict[tuple[int, int], dict[str, Any]] = {}
        for candidate in candidates:
            rows.pop(candidate.key, None)
            rows[candidate.key] = candidate.to_values()

        values = list(rows.values())
        for start in range(0, len(values), self.BATCH_SIZE):
            stmt = self._insert().values(values[start : start + self.BATCH_SIZE])
            stmt = stmt.on_conflict_do_update(
                index_elements=CONFLICT_KEY,
                set_={
                    "amount": stmt.excluded.amount,
                    "link_id": stmt.excluded.link_id,
                    "updated_at": func.now(),
                },
            )
            await self.session.execute(stmt)

        logger.debug("Upserted %d breakdown rows", len(values))
        return len(values)

    async def upsert_breakdown(
        self,
        payroll_id: int,
        payhead_id: int,
        amount: Decimal,
    ) -> PayheadBreakdown:
        """Manually set one payslip amount, keeping any existing link_id.

        Raises:
            BreakdownTargetNotFoundError: if the payroll or payhead does not exist
        """
        payroll = await self.session.get(Payroll, payroll_id)
        payhead = await self.session.get(Payhead, payhead_id)
        if payroll is None or payhead is None:
            raise BreakdownTargetNotFoundError(payroll_id, payhead_id)

        stmt = self._insert().values(
            payroll_id=payroll_id,
            payhead_id=payhead_id,
            amount=BreakdownBuilder.round_to_cents(amount),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=CONFLICT_KEY,
            set_={"amount": stmt.excluded.amount, "updated_at": func.now()},
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(PayheadBreakdown)
            .where(
                PayheadBreakdown.payroll_id == payroll_id,
                PayheadBreakdown.payhead_id == payhead_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_breakdowns(self, payroll_ids: Iterable[int]) -> list[PayheadBreakdown]:
        """Persisted breakdowns for the given payrolls, ordered by payroll then payhead."""
        ids = list(payroll_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(PayheadBreakdown)
            .where(PayheadBreakdown.payroll_id.in_(ids))
            .order_by(PayheadBreakdown.payroll_id, PayheadBreakdown.payhead_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_pay_period_breakdowns(self, pay_period_id: int) -> list[PayheadBreakdown]:
        """Persisted breakdowns of every payroll in a pay period."""
        result = await self.session.execute(
            select(PayheadBreakdown)
            .join(Payroll, Payroll.id == PayheadBreakdown.payroll_id)
            .where(Payroll.pay_period_id == pay_period_id)
            .order_by(PayheadBreakdown.payroll_id, PayheadBreakdown.payhead_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
