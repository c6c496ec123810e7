from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.loan import (
    DisbursementRequest,
    LoanDetailsOut,
    LoanOut,
    RepaymentOut,
    RepaymentRequest,
)
from app.services import loan_disbursements, loan_repayments, loans

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get("/{loan_id}", response_model=LoanDetailsOut, summary="Loan with schedule and repayments")
async def get_loan(
    loan_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanDetailsOut:
    return await loans.get_loan_details(db, ctx, loan_id)


@router.post("/{loan_id}/disburse", response_model=LoanOut, summary="Disburse a loan")
async def disburse_loan(
    loan_id: UUID,
    payload: DisbursementRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanOut:
    loan, _ = await loan_disbursements.disburse_loan(db, ctx, loan_id, payload.amount, payload.reference)
    await db.commit()
    return LoanOut.model_validate(loan)


@router.post(
    "/{loan_id}/repayments",
    response_model=RepaymentOut,
    status_code=201,
    summary="Record a repayment against a loan",
)
async def record_repayment(
    loan_id: UUID,
    payload: RepaymentRequest,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> RepaymentOut:
    _, repayment = await loan_repayments.record_repayment(
        db,
        ctx,
        loan_id,
        payload.amount,
        paid_at=payload.paid_at,
        reference=payload.payment_reference,
    )
    await db.commit()
    return RepaymentOut.model_validate(repayment)
