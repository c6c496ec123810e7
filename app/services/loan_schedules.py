from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.models.loan import Loan
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.schemas.loan import InstallmentStatus


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_no: int
    due_date: date
    due_principal: Decimal
    due_interest: Decimal

    @property
    def due_total(self) -> Decimal:
        return self.due_principal + self.due_interest


def build_installments(
    principal,
    term_months: int,
    annual_rate_percent,
    start_date: date,
) -> list[ScheduledInstallment]:
    """Split ``principal`` into equal monthly installments with flat per-installment interest.

    Principal is rounded half-up to cents; the final installment absorbs the rounding
    remainder so the due principals always sum to ``principal`` exactly.
    Terms so long that the rounded share overshoots ``principal`` are rejected.
    """
    if term_months <= 0:
        raise ValueError("term_months must be >= 1")
    principal = to_money(as_decimal(principal))
    rate = as_decimal(annual_rate_percent) / Decimal("100")

    base = to_money(principal / Decimal(term_months))
    last = principal - base * (term_months - 1)
    if last < ZERO:
        raise ValidationError(
            f"Principal {principal} cannot be split into {term_months} installments",
            details={"principal": str(principal), "term_months": term_months},
        )

    installments: list[ScheduledInstallment] = []
    for number in range(1, term_months + 1):
        due_principal = last if number == term_months else base
        installments.append(
            ScheduledInstallment(
                installment_no=number,
                due_date=_add_months(start_date, number),
                due_principal=due_principal,
                due_interest=to_money(due_principal * rate),
            )
        )
    return installments


async def schedule_exists(db: AsyncSession, loan_id) -> bool:
    stmt = select(func.count(RepaymentScheduleInstallment.id)).where(
        RepaymentScheduleInstallment.loan_id == loan_id
    )
    return int((await db.execute(stmt)).scalar_one() or 0) > 0


async def ensure_schedule(db: AsyncSession, loan: Loan, start_date: date) -> list[RepaymentScheduleInstallment]:
    """Generate the loan's schedule unless it already has one; caller holds the loan lock."""
    if await schedule_exists(db, loan.id):
        return []
    rows = [
        RepaymentScheduleInstallment(
            loan_id=loan.id,
            installment_no=item.installment_no,
            due_date=item.due_date,
            due_principal=item.due_principal,
            due_interest=item.due_interest,
            due_total=item.due_total,
            paid_amount=ZERO,
            status=InstallmentStatus.PENDING,
        )
        for item in build_installments(
            loan.principal_amount, int(loan.term_months), loan.interest_rate or ZERO, start_date
        )
    ]
    db.add_all(rows)
    return rows


async def list_schedule(db: AsyncSession, loan_id) -> list[RepaymentScheduleInstallment]:
    stmt = (
        select(RepaymentScheduleInstallment)
        .where(RepaymentScheduleInstallment.loan_id == loan_id)
        .order_by(RepaymentScheduleInstallment.installment_no.asc())
    )
    return (await db.execute(stmt)).scalars().all()
