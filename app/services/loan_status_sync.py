from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.application_status_history import ApplicationStatusHistory
from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanApplicationStatus, LoanStatus

logger = logging.getLogger(__name__)

LOAN_TO_APPLICATION_STATUS = {
    LoanStatus.DISBURSED: LoanApplicationStatus.DISBURSED,
    LoanStatus.IN_REPAYMENT: LoanApplicationStatus.IN_REPAYMENT,
    LoanStatus.CLOSED: LoanApplicationStatus.CLOSED,
}


def append_history(
    db: AsyncSession,
    application: LoanApplication,
    *,
    from_status: LoanApplicationStatus | None,
    to_status: LoanApplicationStatus,
    changed_by,
    note: str | None = None,
) -> ApplicationStatusHistory:
    entry = ApplicationStatusHistory(
        application_id=application.id,
        from_status=from_status,
        to_status=to_status,
        changed_by=changed_by,
        note=note,
    )
    db.add(entry)
    return entry


async def sync_application_status(
    db: AsyncSession,
    application_id,
    loan_status: LoanStatus,
    *,
    changed_by,
    note: str,
) -> LoanApplication | None:
    """Mirror a loan's servicing status onto its application.

    Servicing drives the application directly (Disbursed straight to Closed is possible
    when one repayment settles everything), so the transition table is not consulted.
    Returns the application when its status changed.
    """
    target = LOAN_TO_APPLICATION_STATUS.get(LoanStatus(loan_status))
    if target is None:
        return None
    application = (
        await db.execute(select(LoanApplication).where(LoanApplication.id == application_id))
    ).scalar_one_or_none()
    if application is None:
        logger.warning("Loan references missing application %s", application_id)
        return None
    current = LoanApplicationStatus(application.status)
    if current == target:
        return None

    application.status = target
    db.add(application)
    append_history(db, application, from_status=current, to_status=target, changed_by=changed_by, note=note)
    logger.info("Application %s synced %s -> %s", application.id, current.value, target.value)
    return application
