"""Seed script for the default payhead catalogue.

Run with:
    python scripts/seed_payheads.py

This creates the tables, the payheads every pay run needs (basic salary,
cash advance, tardiness) and two sample benefit plans with their
system-only contribution deductions.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.types import AffectedDescriptor
from payrun_engine.database import create_all, dispose_db, get_session
from payrun_engine.models import BenefitContributionTable, BenefitPlan, Payhead

EVERYONE = AffectedDescriptor(mandatory_regular=True, mandatory_probationary=True).to_json()

# Catalogue order is ascending id: the basic salary payhead must come first
DEFAULT_PAYHEADS = [
    {
        "name": "Basic Salary",
        "type": "earning",
        "calculation": "rate_p_hr × total_shft_hr",
        "variable": "basic_pay",
        "system_only": False,
    },
    {
        "name": "Cash Advance",
        "type": "earning",
        "calculation": "get_disbursement",
        "variable": "cash_advance",
        "system_only": True,
    },
    {
        "name": "Cash Advance Repayment",
        "type": "deduction",
        "calculation": "get_repayment",
        "variable": "cash_advance_repayment",
        "system_only": True,
    },
    {
        "name": "Tardiness",
        "type": "deduction",
        "calculation": "get_tardiness",
        "variable": "tardiness",
        "system_only": True,
    },
]


async def get_or_create_payhead(session: AsyncSession, definition: dict) -> Payhead:
    """Create a payhead unless one with the same name exists."""
    result = await session.execute(select(Payhead).where(Payhead.name == definition["name"]))
    payhead = result.scalar_one_or_none()
    if payhead is not None:
        print(f"Payhead '{definition['name']}' already exists, skipping...")
        return payhead

    payhead = Payhead(affected_json=EVERYONE, is_overwritable=not definition["system_only"], **definition)
    session.add(payhead)
    await session.flush()
    print(f"Created payhead '{payhead.name}' (id {payhead.id})")
    return payhead


async def seed_payheads(session: AsyncSession) -> None:
    for definition in DEFAULT_PAYHEADS:
        await get_or_create_payhead(session, definition)


async def seed_benefit_plans(session: AsyncSession) -> None:
    """Create a bracket-table plan and a flat-rate plan."""
    result = await session.execute(select(BenefitPlan).where(BenefitPlan.name == "SSS"))
    if result.scalar_one_or_none():
        print("Benefit plans already exist, skipping...")
        return

    sss_deduction = await get_or_create_payhead(
        session,
        {
            "name": "SSS Contribution",
            "type": "deduction",
            "calculation": "get_contribution",
            "variable": "sss_contribution",
            "system_only": True,
        },
    )
    sss = BenefitPlan(
        name="SSS",
        plan_type="statutory",
        deduction_id=sss_deduction.id,
    )
    session.add(sss)
    await session.flush()
    session.add(
        BenefitContributionTable(
            plan_id=sss.id,
            employee_rate=Decimal("4.5"),
            employer_rate=Decimal("9.5"),
            min_salary=Decimal("4250"),
            max_salary=Decimal("29750"),
            min_msc=Decimal("4000"),
            max_msc=Decimal("30000"),
            msc_step=Decimal("500"),
            ec_threshold=Decimal("15000"),
            ec_low_rate=Decimal("0.25"),
            ec_high_rate=Decimal("0.5"),
            wisp_threshold=Decimal("20000"),
        )
    )
    print("Created SSS plan with contribution table")

    philhealth_deduction = await get_or_create_payhead(
        session,
        {
            "name": "PhilHealth Contribution",
            "type": "deduction",
            "calculation": "get_contribution",
            "variable": "philhealth_contribution",
            "system_only": True,
        },
    )
    session.add(
        BenefitPlan(
            name="PhilHealth",
            plan_type="statutory",
            employee_contribution=Decimal("2.5"),
            employer_contribution=Decimal("2.5"),
            deduction_id=philhealth_deduction.id,
        )
    )
    print("Created PhilHealth flat-rate plan")

    await session.flush()


async def main():
    """Run seed script."""
    print("Creating tables...")
    await create_all()

    print("Seeding payheads...")
    async with get_session() as session:
        await seed_payheads(session)
        await seed_benefit_plans(session)

    await dispose_db()
    print("\nDone! Payhead catalogue seeded successfully.")


if __name__ == "__main__":
    asyncio.run(main())
