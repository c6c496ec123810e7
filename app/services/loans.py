from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFound
from app.models.disbursement import Disbursement
from app.models.loan import Loan
from app.schemas.loan import (
    DisbursementOut,
    InstallmentOut,
    LoanDetailsOut,
    RepaymentOut,
)
from app.services import authz
from app.services.loan_repayments import list_repayments
from app.services.loan_schedules import list_schedule


async def list_disbursements(db: AsyncSession, loan_id) -> list[Disbursement]:
    stmt = (
        select(Disbursement)
        .where(Disbursement.loan_id == loan_id)
        .order_by(Disbursement.disbursed_at.desc())
    )
    return (await db.execute(stmt)).scalars().all()


async def get_loan_details(db: AsyncSession, ctx: deps.ActorContext, loan_id) -> LoanDetailsOut:
    await authz.ensure_loan_access(db, ctx, loan_id)
    loan = await db.get(Loan, loan_id)
    if loan is None:
        raise NotFound("Loan not found")

    schedule = await list_schedule(db, loan.id)
    repayments = await list_repayments(db, loan.id)
    disbursements = await list_disbursements(db, loan.id)
    details = LoanDetailsOut.model_validate(loan)
    details.schedule = [InstallmentOut.model_validate(item) for item in schedule]
    details.repayments = [RepaymentOut.model_validate(item) for item in repayments]
    details.disbursements = [DisbursementOut.model_validate(item) for item in disbursements]
    return details
