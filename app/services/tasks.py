from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFound
from app.models.client import Client
from app.models.loan_application import LoanApplication
from app.models.note import Note
from app.models.task import Task
from app.schemas.audit import NoteCreatedEvent, TaskEvent
from app.schemas.tasks import TaskCreate, TaskStatus, TaskUpdate
from app.services import authz
from app.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)


def _task_event(action: str, task: Task, note: str | None = None) -> TaskEvent:
    return TaskEvent(
        action=action,
        application_id=task.application_id,
        title=task.title,
        status=task.status,
        assigned_to=task.assigned_to,
        due_date=task.due_date,
        note=note,
    )


async def list_tasks(
    db: AsyncSession,
    ctx: deps.ActorContext,
    *,
    application_id=None,
    assigned_to_me: bool = False,
) -> list[Task]:
    stmt = (
        select(Task)
        .join(LoanApplication, LoanApplication.id == Task.application_id)
        .join(Client, Client.id == LoanApplication.client_id)
    )
    if application_id is not None:
        stmt = stmt.where(Task.application_id == application_id)
    if assigned_to_me:
        stmt = stmt.where(Task.assigned_to == ctx.user_id)
    elif not authz.is_staff(ctx.roles):
        stmt = stmt.where(or_(Task.assigned_to == ctx.user_id, Client.user_id == ctx.user_id))
    stmt = stmt.order_by(Task.due_date.asc().nulls_last(), Task.title.asc())
    return (await db.execute(stmt)).scalars().all()


async def _get_task(db: AsyncSession, task_id) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


async def _ensure_task_mutation(db: AsyncSession, ctx: deps.ActorContext, task: Task) -> None:
    if authz.is_staff(ctx.roles) or task.assigned_to == ctx.user_id:
        return
    await authz.ensure_application_access(db, ctx, task.application_id)


async def create_task(db: AsyncSession, ctx: deps.ActorContext, payload: TaskCreate) -> Task:
    authz.ensure_internal(ctx, "Only internal users can create tasks")
    await authz.ensure_application_access(db, ctx, payload.application_id)

    task = Task(
        id=uuid.uuid4(),
        application_id=payload.application_id,
        title=payload.title,
        status=TaskStatus.OPEN,
        assigned_to=payload.assigned_to,
        due_date=payload.due_date,
    )
    db.add(task)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="task",
        resource_id=task.id,
        event=_task_event("task.created", task),
    )
    return task


async def update_task(db: AsyncSession, ctx: deps.ActorContext, task_id, payload: TaskUpdate) -> Task:
    task = await _get_task(db, task_id)
    await _ensure_task_mutation(db, ctx, task)
    old_snapshot = model_snapshot(task)

    provided = payload.model_fields_set
    if payload.title is not None:
        task.title = payload.title
    if "assigned_to" in provided:
        task.assigned_to = payload.assigned_to
    if "due_date" in provided:
        task.due_date = payload.due_date
    db.add(task)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="task",
        resource_id=task.id,
        event=_task_event("task.updated", task),
        old_value=old_snapshot,
    )
    return task


async def complete_task(db: AsyncSession, ctx: deps.ActorContext, task_id, note: str | None = None) -> Task:
    task = await _get_task(db, task_id)
    await _ensure_task_mutation(db, ctx, task)

    task.status = TaskStatus.COMPLETED
    if task.completed_at is None:
        task.completed_at = datetime.now(timezone.utc)
    db.add(task)

    note = (note or "").strip() or None
    if note:
        _add_note(db, ctx, task.application_id, note)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="task",
        resource_id=task.id,
        event=_task_event("task.completed", task, note=note),
    )
    logger.info("Task %s completed", task.id)
    return task


def _add_note(db: AsyncSession, ctx: deps.ActorContext, application_id, body: str) -> Note:
    note = Note(id=uuid.uuid4(), application_id=application_id, body=body, created_by=ctx.user_id)
    db.add(note)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="note",
        resource_id=note.id,
        event=NoteCreatedEvent(application_id=application_id, body=body),
    )
    return note


async def list_notes(db: AsyncSession, ctx: deps.ActorContext, application_id) -> list[Note]:
    await authz.ensure_application_access(db, ctx, application_id)
    stmt = (
        select(Note)
        .where(Note.application_id == application_id)
        .order_by(Note.created_at.asc())
    )
    return (await db.execute(stmt)).scalars().all()


async def create_note(db: AsyncSession, ctx: deps.ActorContext, application_id, body: str) -> Note:
    await authz.ensure_application_access(db, ctx, application_id)
    return _add_note(db, ctx, application_id, body)
