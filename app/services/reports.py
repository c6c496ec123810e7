from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.application_status_history import ApplicationStatusHistory
from app.models.audit_log import AuditLog
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.models.task import Task
from app.schemas.loan import LoanApplicationStatus, LoanStatus
from app.schemas.reports import (
    ArrearsItem,
    PipelineConversionItem,
    PortfolioSummary,
    ProductivityItem,
    TurnaroundReport,
)
from app.schemas.tasks import TaskStatus
from app.services import authz
from app.services.loan_schedules import ZERO, as_decimal, to_money

REPORT_FORBIDDEN = "Only Admin or LoanOfficer can access reports"
ACTIVE_LOAN_STATUSES = (LoanStatus.DISBURSED, LoanStatus.IN_REPAYMENT)
AUDIT_LOG_MAX_LIMIT = 1000
SECONDS_PER_DAY = 86400.0


async def portfolio_summary(db: AsyncSession, ctx: deps.ActorContext) -> PortfolioSummary:
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    stmt = select(
        func.count(Loan.id),
        func.count(Loan.id).filter(Loan.status.in_(ACTIVE_LOAN_STATUSES)),
        func.coalesce(func.sum(Loan.principal_amount), 0),
        func.coalesce(func.sum(Loan.outstanding_principal), 0),
    )
    row = (await db.execute(stmt)).one()
    total_principal = to_money(as_decimal(row[2] or 0))
    outstanding = to_money(as_decimal(row[3] or 0))
    return PortfolioSummary(
        total_loans=int(row[0] or 0),
        active_loans=int(row[1] or 0),
        total_principal=total_principal,
        outstanding_principal=outstanding,
        repaid_principal=total_principal - outstanding,
    )


async def list_arrears(
    db: AsyncSession,
    ctx: deps.ActorContext,
    as_of: date | None = None,
) -> list[ArrearsItem]:
    """Installments past due and not fully paid on loans that are still open, oldest first."""
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    today = as_of or datetime.now(timezone.utc).date()
    stmt = (
        select(RepaymentScheduleInstallment, Loan.application_id)
        .join(Loan, Loan.id == RepaymentScheduleInstallment.loan_id)
        .where(
            RepaymentScheduleInstallment.due_date < today,
            RepaymentScheduleInstallment.due_total > RepaymentScheduleInstallment.paid_amount,
            Loan.status != LoanStatus.CLOSED,
        )
        .order_by(
            RepaymentScheduleInstallment.due_date.asc(),
            RepaymentScheduleInstallment.installment_no.asc(),
        )
    )
    items: list[ArrearsItem] = []
    for installment, application_id in (await db.execute(stmt)).all():
        due_total = as_decimal(installment.due_total)
        paid = as_decimal(installment.paid_amount or 0)
        items.append(
            ArrearsItem(
                loan_id=installment.loan_id,
                application_id=application_id,
                installment_no=installment.installment_no,
                due_date=installment.due_date,
                due_total=due_total,
                paid_amount=paid,
                outstanding_amount=to_money(max(due_total - paid, ZERO)),
                days_overdue=max((today - installment.due_date).days, 0),
            )
        )
    return items


async def list_audit_logs(
    db: AsyncSession,
    ctx: deps.ActorContext,
    *,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    limit = max(1, min(limit, AUDIT_LOG_MAX_LIMIT))
    stmt = select(AuditLog)
    if created_from is not None:
        stmt = stmt.where(AuditLog.created_at >= created_from)
    if created_to is not None:
        stmt = stmt.where(AuditLog.created_at <= created_to)
    stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit)
    return (await db.execute(stmt)).scalars().all()


async def _first_reached(db: AsyncSession, status: LoanApplicationStatus) -> dict[UUID, datetime]:
    stmt = (
        select(ApplicationStatusHistory.application_id, func.min(ApplicationStatusHistory.changed_at))
        .where(ApplicationStatusHistory.to_status == status)
        .group_by(ApplicationStatusHistory.application_id)
    )
    return {row[0]: row[1] for row in (await db.execute(stmt)).all() if row[1] is not None}


async def turnaround_report(db: AsyncSession, ctx: deps.ActorContext) -> TurnaroundReport:
    """Average days from first submission to first approval."""
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    submitted = await _first_reached(db, LoanApplicationStatus.SUBMITTED)
    approved = await _first_reached(db, LoanApplicationStatus.APPROVED)
    durations = [
        (approved_at - submitted[application_id]).total_seconds() / SECONDS_PER_DAY
        for application_id, approved_at in approved.items()
        if application_id in submitted and approved_at >= submitted[application_id]
    ]
    if not durations:
        return TurnaroundReport(count=0, average_days=0.0)
    return TurnaroundReport(count=len(durations), average_days=sum(durations) / len(durations))


async def pipeline_conversion(db: AsyncSession, ctx: deps.ActorContext) -> list[PipelineConversionItem]:
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    count = func.count(ApplicationStatusHistory.id)
    stmt = (
        select(ApplicationStatusHistory.from_status, ApplicationStatusHistory.to_status, count)
        .group_by(ApplicationStatusHistory.from_status, ApplicationStatusHistory.to_status)
        .order_by(count.desc())
    )
    items = []
    for from_status, to_status, total in (await db.execute(stmt)).all():
        items.append(
            PipelineConversionItem(
                from_status=LoanApplicationStatus(from_status).value if from_status else "None",
                to_status=LoanApplicationStatus(to_status).value,
                count=int(total),
            )
        )
    return items


async def productivity_report(db: AsyncSession, ctx: deps.ActorContext) -> list[ProductivityItem]:
    authz.ensure_staff(ctx, REPORT_FORBIDDEN)
    task_stmt = (
        select(Task.assigned_to, func.count(Task.id))
        .where(Task.assigned_to.is_not(None), Task.status == TaskStatus.COMPLETED)
        .group_by(Task.assigned_to)
    )
    app_stmt = (
        select(LoanApplication.assigned_to_user_id, func.count(LoanApplication.id))
        .where(LoanApplication.assigned_to_user_id.is_not(None))
        .group_by(LoanApplication.assigned_to_user_id)
    )
    tasks_completed = {row[0]: int(row[1]) for row in (await db.execute(task_stmt)).all()}
    handled = {row[0]: int(row[1]) for row in (await db.execute(app_stmt)).all()}
    items = [
        ProductivityItem(
            user_id=user_id,
            tasks_completed=tasks_completed.get(user_id, 0),
            applications_handled=handled.get(user_id, 0),
        )
        for user_id in set(tasks_completed) | set(handled)
    ]
    items.sort(key=lambda item: (-item.tasks_completed, -item.applications_handled, str(item.user_id)))
    return items
