from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import InvalidStateTransition
from app.models.loan import Loan
from app.models.repayment import Repayment
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.schemas.audit import RepaymentRecordedEvent
from app.schemas.loan import InstallmentStatus, LoanStatus
from app.services import authz
from app.services.audit import record_audit_log
from app.services.loan_disbursements import get_loan_for_update
from app.services.loan_schedules import ZERO, as_decimal, to_money
from app.services.loan_status_sync import sync_application_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepaymentSplit:
    principal_component: Decimal
    interest_component: Decimal
    new_outstanding: Decimal
    loan_status: LoanStatus


def split_components(amount, outstanding_principal) -> RepaymentSplit:
    """Book the payment against principal first; anything beyond it counts as interest."""
    amount = as_decimal(amount)
    outstanding = as_decimal(outstanding_principal)
    principal_component = min(amount, outstanding)
    interest_component = amount - principal_component
    new_outstanding = max(ZERO, outstanding - principal_component)
    status = LoanStatus.CLOSED if new_outstanding == 0 else LoanStatus.IN_REPAYMENT
    return RepaymentSplit(principal_component, interest_component, new_outstanding, status)


def allocate_waterfall(
    installments: Sequence[RepaymentScheduleInstallment],
    amount,
    paid_at: datetime,
) -> Decimal:
    """Apply ``amount`` to the open installments in ascending installment order.

    Mutates the installments in place and returns whatever could not be applied.
    """
    remaining = as_decimal(amount)
    for item in sorted(installments, key=lambda row: row.installment_no):
        if remaining <= 0:
            break
        due_total = as_decimal(item.due_total)
        paid = as_decimal(item.paid_amount or ZERO)
        if paid >= due_total:
            continue
        applied = min(remaining, due_total - paid)
        item.paid_amount = paid + applied
        remaining -= applied
        if item.paid_amount >= due_total:
            item.status = InstallmentStatus.PAID
            item.paid_at = paid_at
    return remaining


async def _open_installments(db: AsyncSession, loan_id) -> list[RepaymentScheduleInstallment]:
    stmt = (
        select(RepaymentScheduleInstallment)
        .where(
            RepaymentScheduleInstallment.loan_id == loan_id,
            RepaymentScheduleInstallment.paid_amount < RepaymentScheduleInstallment.due_total,
        )
        .order_by(RepaymentScheduleInstallment.installment_no.asc())
    )
    return (await db.execute(stmt)).scalars().all()


async def record_repayment(
    db: AsyncSession,
    ctx: deps.ActorContext,
    loan_id,
    amount,
    *,
    paid_at: datetime | None = None,
    reference: str | None = None,
) -> tuple[Loan, Repayment]:
    authz.ensure_staff(ctx, "Only Admin or LoanOfficer can record repayments")
    loan = await get_loan_for_update(db, loan_id)

    if LoanStatus(loan.status) == LoanStatus.CLOSED:
        raise InvalidStateTransition("Loan is already closed", details={"loan_status": LoanStatus.CLOSED.value})

    amount = to_money(as_decimal(amount))
    paid_at = paid_at or datetime.now(timezone.utc)
    split = split_components(amount, loan.outstanding_principal)

    repayment = Repayment(
        loan_id=loan.id,
        amount=amount,
        principal_component=split.principal_component,
        interest_component=split.interest_component,
        unapplied_amount=ZERO,
        paid_at=paid_at,
        payment_reference=reference,
        recorded_by=ctx.user_id,
    )
    db.add(repayment)

    loan.outstanding_principal = split.new_outstanding
    loan.status = split.loan_status
    db.add(loan)

    installments = await _open_installments(db, loan.id)
    unapplied = allocate_waterfall(installments, amount, paid_at)
    db.add_all(installments)
    if unapplied > 0:
        repayment.unapplied_amount = unapplied
        logger.warning(
            "Repayment on loan %s exceeds the remaining schedule by %s; kept as unapplied",
            loan.id,
            unapplied,
        )

    await sync_application_status(
        db,
        loan.application_id,
        split.loan_status,
        changed_by=ctx.user_id,
        note="Repayment recorded.",
    )
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="loan",
        resource_id=loan.id,
        event=RepaymentRecordedEvent(
            amount=amount,
            principal_component=split.principal_component,
            interest_component=split.interest_component,
            unapplied_amount=repayment.unapplied_amount,
            outstanding_principal=split.new_outstanding,
            loan_status=split.loan_status,
            payment_reference=reference,
        ),
    )
    logger.info(
        "Repayment %s recorded on loan %s; outstanding now %s (%s)",
        amount,
        loan.id,
        split.new_outstanding,
        split.loan_status.value,
    )
    return loan, repayment


async def list_repayments(db: AsyncSession, loan_id) -> list[Repayment]:
    stmt = (
        select(Repayment)
        .where(Repayment.loan_id == loan_id)
        .order_by(Repayment.paid_at.desc(), Repayment.created_at.desc())
    )
    return (await db.execute(stmt)).scalars().all()
