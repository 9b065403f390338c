"""Pay period staging and breakdown endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from payrun_engine.api.dependencies import AppSettings, Attendance, DbSession
from payrun_engine.api.schemas import (
    BreakdownListResponse,
    BreakdownResponse,
    BreakdownUpdate,
    ErrorResponse,
    PayslipDataResponse,
    StageFailureResponse,
)
from payrun_engine.models import PayPeriod
from payrun_engine.services.commit_service import BreakdownTargetNotFoundError, CommitService
from payrun_engine.services.snapshot_service import PayPeriodNotFoundError, PayPeriodProcessedError
from payrun_engine.services.staging_service import PayrollStagingPipeline

router = APIRouter(tags=["pay-periods"])


# ============================================================================
# Staging
# ============================================================================


@router.post(
    "/pay-periods/{pay_period_id}/stage",
    response_model=PayslipDataResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": StageFailureResponse},
    },
)
async def stage_pay_period(
    db: DbSession,
    attendance: Attendance,
    settings: AppSettings,
    pay_period_id: Annotated[int, Path(gt=0)],
) -> PayslipDataResponse:
    """Run fetch, compute and commit for a pay period.

    Re-staging the same period overwrites its breakdowns.
    """
    pipeline = PayrollStagingPipeline(db, attendance, settings)
    try:
        payslips = await pipeline.run(pay_period_id)
    except PayPeriodNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pay period not found",
        )
    except PayPeriodProcessedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )

    return PayslipDataResponse.model_validate(payslips)


# ============================================================================
# Breakdowns
# ============================================================================


@router.get(
    "/pay-periods/{pay_period_id}/breakdowns",
    response_model=BreakdownListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_breakdowns(
    db: DbSession,
    pay_period_id: Annotated[int, Path(gt=0)],
) -> BreakdownListResponse:
    """List persisted breakdowns of a pay period."""
    period = await db.get(PayPeriod, pay_period_id)
    if period is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pay period not found",
        )

    rows = await CommitService(db).get_pay_period_breakdowns(pay_period_id)
    return BreakdownListResponse(
        pay_period_id=pay_period_id,
        items=[BreakdownResponse.model_validate(r) for r in rows],
        total=len(rows),
    )


@router.put(
    "/breakdowns",
    response_model=BreakdownResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_breakdown(
    db: DbSession,
    payload: BreakdownUpdate,
) -> BreakdownResponse:
    """Set one payslip amount, creating the breakdown if needed."""
    try:
        row = await CommitService(db).upsert_breakdown(
            payroll_id=payload.payroll_id,
            payhead_id=payload.payhead_id,
            amount=payload.amount,
        )
    except BreakdownTargetNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )

    response = BreakdownResponse.model_validate(row)
    await db.commit()
    return response
