from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal
from app.models.client import Client
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.notification import Notification
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.models.task import Task
from app.schemas.loan import LoanApplicationStatus
from app.schemas.notifications import (
    ArrearsReminderPayload,
    NotificationPayload,
    StaleApplicationFollowUpPayload,
    TaskReminderPayload,
)
from app.schemas.tasks import TaskStatus
from app.services.notifications import enqueue_notification

logger = logging.getLogger(__name__)

STALE_AFTER_DAYS = 7
TASK_DUE_WINDOW_DAYS = 1
FOLLOW_UP_STATUSES = (
    LoanApplicationStatus.SUBMITTED,
    LoanApplicationStatus.UNDER_REVIEW,
    LoanApplicationStatus.INFO_REQUESTED,
)
REMINDER_TYPES = ("ArrearsReminder", "TaskReminder", "StaleApplicationFollowUp")


def _reminder_key(user_id, payload: NotificationPayload) -> tuple:
    if isinstance(payload, ArrearsReminderPayload):
        subject = payload.loan_id
    elif isinstance(payload, TaskReminderPayload):
        subject = payload.task_id
    else:
        subject = payload.application_id
    return (str(user_id), payload.type, str(subject))


async def _sent_today(db: AsyncSession, day_start: datetime) -> set[tuple]:
    stmt = select(Notification).where(
        Notification.type.in_(REMINDER_TYPES),
        Notification.created_at >= day_start,
    )
    keys = set()
    for notification in (await db.execute(stmt)).scalars().all():
        try:
            payload = notification.typed_payload
        except PydanticValidationError:
            logger.warning("Skipping notification %s with unreadable payload", notification.id)
            continue
        if payload is not None:
            keys.add(_reminder_key(notification.user_id, payload))
    return keys


async def _arrears_candidates(db: AsyncSession, today: date) -> list[tuple]:
    stmt = (
        select(Client.user_id, Loan.id, Loan.application_id)
        .select_from(RepaymentScheduleInstallment)
        .join(Loan, Loan.id == RepaymentScheduleInstallment.loan_id)
        .join(LoanApplication, LoanApplication.id == Loan.application_id)
        .join(Client, Client.id == LoanApplication.client_id)
        .where(
            RepaymentScheduleInstallment.due_date < today,
            RepaymentScheduleInstallment.due_total > RepaymentScheduleInstallment.paid_amount,
            Client.user_id.is_not(None),
        )
        .distinct()
    )
    return [
        (user_id, ArrearsReminderPayload(loan_id=loan_id, application_id=application_id))
        for user_id, loan_id, application_id in (await db.execute(stmt)).all()
    ]


async def _task_candidates(db: AsyncSession, today: date) -> list[tuple]:
    stmt = select(Task.assigned_to, Task.id, Task.application_id).where(
        Task.assigned_to.is_not(None),
        Task.status == TaskStatus.OPEN,
        Task.due_date.is_not(None),
        Task.due_date <= today + timedelta(days=TASK_DUE_WINDOW_DAYS),
    )
    return [
        (user_id, TaskReminderPayload(task_id=task_id, application_id=application_id))
        for user_id, task_id, application_id in (await db.execute(stmt)).all()
    ]


async def _stale_candidates(db: AsyncSession, now: datetime) -> list[tuple]:
    recipient = func.coalesce(LoanApplication.assigned_to_user_id, Client.user_id)
    stmt = (
        select(recipient, LoanApplication.id, LoanApplication.status)
        .join(Client, Client.id == LoanApplication.client_id)
        .where(
            LoanApplication.status.in_(FOLLOW_UP_STATUSES),
            LoanApplication.created_at < now - timedelta(days=STALE_AFTER_DAYS),
            recipient.is_not(None),
        )
    )
    return [
        (user_id, StaleApplicationFollowUpPayload(application_id=application_id, status=status))
        for user_id, application_id, status in (await db.execute(stmt)).all()
    ]


async def run_reminder_scans(db: AsyncSession, now: datetime | None = None) -> list[Notification]:
    """Raise arrears, task and stale-application reminders, at most one per subject per day."""
    now = now or datetime.now(timezone.utc)
    today = now.date()
    already_sent = await _sent_today(db, datetime.combine(today, time.min, tzinfo=timezone.utc))

    candidates = (
        await _arrears_candidates(db, today)
        + await _task_candidates(db, today)
        + await _stale_candidates(db, now)
    )
    created: list[Notification] = []
    for user_id, payload in candidates:
        key = _reminder_key(user_id, payload)
        if key in already_sent:
            continue
        already_sent.add(key)
        notification = enqueue_notification(db, user_id, payload, sent_at=now)
        if notification is not None:
            created.append(notification)
    logger.info("Reminder scan raised %d notifications", len(created))
    return created


async def main() -> None:
    configure_logging()
    async with AsyncSessionLocal() as session:
        await run_reminder_scans(session)
        await session.commit()


if __name__ == "__main__":
    asyncio.run(main())
