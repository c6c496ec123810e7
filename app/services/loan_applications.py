from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import (
    ConcurrencyConflict,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from app.core.settings import settings
from app.models.application_status_history import ApplicationStatusHistory
from app.models.client import Client
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.note import Note
from app.models.task import Task
from app.schemas.audit import (
    ApplicationCreatedEvent,
    ApplicationStatusChangedEvent,
    ApplicationUpdatedEvent,
)
from app.schemas.loan import (
    LoanApplicationCreate,
    LoanApplicationStatus,
    LoanApplicationUpdate,
    LoanStatus,
)
from app.schemas.notifications import ApplicationStatusChangedPayload
from app.schemas.tasks import TaskStatus
from app.services import authz
from app.services.audit import model_snapshot, record_audit_log
from app.services.loan_status_sync import append_history
from app.services.notifications import notify_users

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "loan_application"
INFO_REQUEST_NOTE = (
    "Additional information has been requested. "
    "Please review tasks and provide requested documents/details."
)


async def _get_application_row(db: AsyncSession, application_id) -> LoanApplication:
    application = await db.get(LoanApplication, application_id)
    if application is None:
        raise NotFound("Application not found")
    return application


async def get_application(db: AsyncSession, ctx: deps.ActorContext, application_id) -> LoanApplication:
    await authz.ensure_application_access(db, ctx, application_id)
    return await _get_application_row(db, application_id)


async def list_applications(
    db: AsyncSession,
    ctx: deps.ActorContext,
    *,
    limit: int = 50,
    offset: int = 0,
    status: LoanApplicationStatus | None = None,
) -> tuple[list[LoanApplication], int]:
    conditions = []
    if not authz.is_staff(ctx.roles):
        if authz.is_assigned_worker(ctx.roles):
            conditions.append(LoanApplication.assigned_to_user_id == ctx.user_id)
        elif authz.is_client(ctx.roles):
            conditions.append(Client.user_id == ctx.user_id)
        else:
            return [], 0
    if status is not None:
        conditions.append(LoanApplication.status == status)

    count_stmt = (
        select(func.count(LoanApplication.id))
        .join(Client, Client.id == LoanApplication.client_id)
        .where(*conditions)
    )
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(LoanApplication)
        .join(Client, Client.id == LoanApplication.client_id)
        .where(*conditions)
        .order_by(LoanApplication.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    items = (await db.execute(stmt)).scalars().all()
    return items, total


async def _require_client(db: AsyncSession, client_id) -> Client:
    client = await db.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    return client


async def _resolve_self_service_client(
    db: AsyncSession,
    ctx: deps.ActorContext,
    payload: LoanApplicationCreate,
) -> Client | None:
    if payload.client_id is not None:
        requested = await db.get(Client, payload.client_id)
        if requested is not None and requested.user_id == ctx.user_id:
            return requested

    stmt = (
        select(Client)
        .where(Client.user_id == ctx.user_id)
        .order_by(Client.created_at.asc())
        .limit(1)
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing

    if not payload.business_name:
        return None
    client = Client(
        id=uuid.uuid4(),
        user_id=ctx.user_id,
        business_name=payload.business_name,
        registration_no=payload.registration_no,
        address=payload.address,
    )
    db.add(client)
    logger.info("Created client profile %s for user %s", client.id, ctx.user_id)
    return client


async def _resolve_client_for_draft(
    db: AsyncSession,
    ctx: deps.ActorContext,
    payload: LoanApplicationCreate,
) -> Client:
    if authz.is_assigned_worker(ctx.roles):
        if payload.assigned_to_user_id is None or payload.assigned_to_user_id != ctx.user_id:
            raise Forbidden("Intern/Originator can only create applications assigned to themselves")
        if payload.client_id is None:
            raise ValidationError("client_id is required for intern/originator-created applications")
        return await _require_client(db, payload.client_id)
    if authz.is_client(ctx.roles):
        client = await _resolve_self_service_client(db, ctx, payload)
        if client is None:
            raise ValidationError("Could not resolve client profile. Provide business info.")
        return client
    if authz.is_staff(ctx.roles):
        if payload.client_id is None:
            raise ValidationError("client_id is required for staff-created applications")
        return await _require_client(db, payload.client_id)
    raise Forbidden("Role not allowed to create applications")


async def create_draft_application(
    db: AsyncSession,
    ctx: deps.ActorContext,
    payload: LoanApplicationCreate,
) -> LoanApplication:
    client = await _resolve_client_for_draft(db, ctx, payload)

    application = LoanApplication(
        id=uuid.uuid4(),
        client_id=client.id,
        requested_amount=payload.requested_amount,
        term_months=payload.term_months,
        purpose=payload.purpose,
        status=LoanApplicationStatus.DRAFT,
        assigned_to_user_id=payload.assigned_to_user_id,
        created_by_user_id=ctx.user_id,
        version=1,
    )
    db.add(application)
    append_history(
        db,
        application,
        from_status=None,
        to_status=LoanApplicationStatus.DRAFT,
        changed_by=ctx.user_id,
    )
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type=RESOURCE_TYPE,
        resource_id=application.id,
        event=ApplicationCreatedEvent(
            client_id=client.id,
            requested_amount=payload.requested_amount,
            term_months=payload.term_months,
            assigned_to_user_id=payload.assigned_to_user_id,
        ),
    )
    logger.info("Draft application %s created for client %s", application.id, client.id)
    return application


async def update_draft_application(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    payload: LoanApplicationUpdate,
) -> LoanApplication:
    await authz.ensure_application_access(db, ctx, application_id)
    application = await _get_application_row(db, application_id)
    old_snapshot = model_snapshot(application)

    if LoanApplicationStatus(application.status) != LoanApplicationStatus.DRAFT:
        if not authz.is_staff(ctx.roles):
            raise InvalidStateTransition(
                "Only staff can reassign non-draft applications",
                details={"status": LoanApplicationStatus(application.status).value},
            )
        application.assigned_to_user_id = payload.assigned_to_user_id
        db.add(application)
        record_audit_log(
            db,
            actor_id=ctx.user_id,
            resource_type=RESOURCE_TYPE,
            resource_id=application.id,
            event=ApplicationUpdatedEvent(
                action="loan_application.reassigned",
                assigned_to_user_id=payload.assigned_to_user_id,
            ),
            old_value=old_snapshot,
        )
        logger.info("Application %s reassigned to %s", application.id, payload.assigned_to_user_id)
        return application

    application.requested_amount = payload.requested_amount
    application.term_months = payload.term_months
    application.purpose = payload.purpose
    application.assigned_to_user_id = payload.assigned_to_user_id
    db.add(application)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type=RESOURCE_TYPE,
        resource_id=application.id,
        event=ApplicationUpdatedEvent(
            action="loan_application.updated",
            requested_amount=payload.requested_amount,
            term_months=payload.term_months,
            purpose=payload.purpose,
            assigned_to_user_id=payload.assigned_to_user_id,
        ),
        old_value=old_snapshot,
    )
    return application


def _notify_status_change(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application: LoanApplication,
    projection: authz.SecurityProjection,
    status: LoanApplicationStatus,
    note: str | None,
) -> None:
    notify_users(
        db,
        [projection.client_owner_user_id, application.assigned_to_user_id],
        ApplicationStatusChangedPayload(application_id=application.id, status=status, note=note),
        exclude=ctx.user_id,
    )


async def _create_info_request_followups(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application: LoanApplication,
    projection: authz.SecurityProjection,
    note: str | None,
) -> tuple[Task, Note]:
    title = "Info requested from applicant"
    if note:
        title = f"{title}: {note}"
    task = Task(
        id=uuid.uuid4(),
        application_id=application.id,
        title=title[:200],
        status=TaskStatus.OPEN,
        assigned_to=projection.client_owner_user_id,
        due_date=date.today() + timedelta(days=settings.info_request_due_days),
    )
    body = INFO_REQUEST_NOTE if not note else f"{INFO_REQUEST_NOTE} Note: {note}"
    follow_up_note = Note(
        id=uuid.uuid4(),
        application_id=application.id,
        body=body[:2000],
        created_by=ctx.user_id,
    )
    db.add(task)
    db.add(follow_up_note)
    return task, follow_up_note


async def ensure_loan_for_application(db: AsyncSession, application: LoanApplication):
    """Provision the application's loan; a second call (or a racing one) inserts nothing.

    Returns the new loan id, or None when a loan already existed.
    """
    stmt = (
        insert(Loan)
        .values(
            id=uuid.uuid4(),
            application_id=application.id,
            principal_amount=application.requested_amount,
            outstanding_principal=application.requested_amount,
            interest_rate=0,
            term_months=application.term_months,
            status=LoanStatus.PENDING_DISBURSEMENT.value,
        )
        .on_conflict_do_nothing(index_elements=[Loan.application_id])
        .returning(Loan.id)
    )
    loan_id = (await db.execute(stmt)).scalar_one_or_none()
    if loan_id is not None:
        logger.info("Loan %s provisioned for application %s", loan_id, application.id)
    return loan_id


async def _apply_transition(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application: LoanApplication,
    projection: authz.SecurityProjection,
    to_status: LoanApplicationStatus,
    note: str | None,
    *,
    action: str,
) -> LoanApplication:
    from_status = LoanApplicationStatus(application.status)
    application.status = to_status
    if to_status == LoanApplicationStatus.SUBMITTED and application.submitted_at is None:
        application.submitted_at = datetime.now(timezone.utc)
    db.add(application)

    loan_id = None
    if to_status == LoanApplicationStatus.INFO_REQUESTED:
        await _create_info_request_followups(db, ctx, application, projection, note)
    elif to_status == LoanApplicationStatus.APPROVED:
        loan_id = await ensure_loan_for_application(db, application)

    append_history(
        db,
        application,
        from_status=from_status,
        to_status=to_status,
        changed_by=ctx.user_id,
        note=note,
    )
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type=RESOURCE_TYPE,
        resource_id=application.id,
        event=ApplicationStatusChangedEvent(
            action=action,
            from_status=from_status,
            to_status=to_status,
            note=note,
            loan_id=loan_id,
        ),
    )
    _notify_status_change(db, ctx, application, projection, to_status, note)
    logger.info(
        "Application %s moved %s -> %s", application.id, from_status.value, to_status.value
    )
    return application


async def submit_application(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    note: str | None = None,
) -> LoanApplication:
    projection = await authz.ensure_application_access(db, ctx, application_id)
    application = await _get_application_row(db, application_id)
    current = LoanApplicationStatus(application.status)
    if current != LoanApplicationStatus.DRAFT:
        raise InvalidStateTransition(
            "Only draft applications can be submitted",
            details={"status": current.value},
        )
    return await _apply_transition(
        db,
        ctx,
        application,
        projection,
        LoanApplicationStatus.SUBMITTED,
        note,
        action="loan_application.submitted",
    )


async def change_application_status(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
    to_status: LoanApplicationStatus,
    note: str | None = None,
    *,
    expected_version: int | None = None,
) -> LoanApplication:
    projection = await authz.ensure_application_access(db, ctx, application_id)
    application = await _get_application_row(db, application_id)
    if expected_version is not None and application.version != expected_version:
        raise ConcurrencyConflict(
            "Application was modified by another request",
            details={"expected_version": expected_version, "current_version": application.version},
        )

    to_status = LoanApplicationStatus(to_status)
    from_status = LoanApplicationStatus(application.status)
    authz.ensure_transition(ctx, from_status, to_status)
    if from_status == to_status:
        return application

    return await _apply_transition(
        db,
        ctx,
        application,
        projection,
        to_status,
        note,
        action="loan_application.status_changed",
    )


async def list_status_history(
    db: AsyncSession,
    ctx: deps.ActorContext,
    application_id,
) -> list[ApplicationStatusHistory]:
    await authz.ensure_application_access(db, ctx, application_id)
    stmt = (
        select(ApplicationStatusHistory)
        .where(ApplicationStatusHistory.application_id == application_id)
        .order_by(ApplicationStatusHistory.changed_at.asc())
    )
    return (await db.execute(stmt)).scalars().all()
