from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import InvalidStateTransition, NotFound, ValidationError
from app.models.disbursement import Disbursement
from app.models.loan import Loan
from app.schemas.audit import LoanDisbursedEvent
from app.schemas.loan import LoanStatus
from app.services import authz
from app.services.audit import record_audit_log
from app.services.loan_schedules import as_decimal, to_money, ensure_schedule
from app.services.loan_status_sync import sync_application_status

logger = logging.getLogger(__name__)

DISBURSABLE_STATUSES = frozenset({LoanStatus.PENDING_DISBURSEMENT, LoanStatus.DISBURSED})


async def get_loan_for_update(db: AsyncSession, loan_id) -> Loan:
    """Load the loan row under ``SELECT .. FOR UPDATE``; servicing writes are serialized on it."""
    stmt = select(Loan).where(Loan.id == loan_id).with_for_update()
    loan = (await db.execute(stmt)).scalar_one_or_none()
    if loan is None:
        raise NotFound("Loan not found")
    return loan


def clamp_disbursement(amount, outstanding_principal) -> Decimal:
    requested = to_money(as_decimal(amount))
    clamped = min(requested, as_decimal(outstanding_principal))
    if clamped <= 0:
        raise ValidationError(
            "Disbursement amount must be greater than zero",
            details={"requested_amount": str(requested), "outstanding_principal": str(outstanding_principal)},
        )
    return clamped


async def disburse_loan(
    db: AsyncSession,
    ctx: deps.ActorContext,
    loan_id,
    amount,
    reference: str | None = None,
) -> tuple[Loan, Disbursement]:
    authz.ensure_staff(ctx, "Only Admin or LoanOfficer can disburse loans")
    loan = await get_loan_for_update(db, loan_id)

    current = LoanStatus(loan.status)
    if current not in DISBURSABLE_STATUSES:
        raise InvalidStateTransition(
            f"Loan cannot be disbursed from status {current.value}",
            details={"loan_status": current.value},
        )

    requested = to_money(as_decimal(amount))
    disbursed_amount = clamp_disbursement(requested, loan.outstanding_principal)
    now = datetime.now(timezone.utc)

    disbursement = Disbursement(
        loan_id=loan.id,
        amount=disbursed_amount,
        disbursed_at=now,
        disbursed_by=ctx.user_id,
        reference=reference,
    )
    db.add(disbursement)

    loan.status = LoanStatus.DISBURSED
    if loan.disbursed_at is None:
        loan.disbursed_at = now
    db.add(loan)

    await sync_application_status(
        db,
        loan.application_id,
        LoanStatus.DISBURSED,
        changed_by=ctx.user_id,
        note="Loan disbursed.",
    )
    generated = await ensure_schedule(db, loan, now.date())

    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="loan",
        resource_id=loan.id,
        event=LoanDisbursedEvent(
            requested_amount=requested,
            amount=disbursed_amount,
            reference=reference,
            outstanding_principal=as_decimal(loan.outstanding_principal),
            schedule_generated=bool(generated),
        ),
    )
    if disbursed_amount != requested:
        logger.info(
            "Disbursement on loan %s clamped from %s to %s", loan.id, requested, disbursed_amount
        )
    logger.info("Loan %s disbursed %s (%d installments generated)", loan.id, disbursed_amount, len(generated))
    return loan, disbursement
