from datetime import date
from uuid import uuid4

import pytest

from app.core.exceptions import Forbidden, NotFound
from app.core.roles import RoleName
from app.models.audit_log import AuditLog
from app.models.loan_application import LoanApplication
from app.models.note import Note
from app.models.task import Task
from app.schemas.tasks import TaskCreate, TaskStatus, TaskUpdate
from app.services import tasks
from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_actor,
    projection_result,
)


def _task(**overrides) -> Task:
    data = dict(
        id=uuid4(),
        application_id=uuid4(),
        title="Collect payslips",
        status=TaskStatus.OPEN,
        assigned_to=None,
        due_date=date(2026, 3, 1),
        completed_at=None,
    )
    data.update(overrides)
    return Task(**data)


@pytest.mark.asyncio
async def test_officer_creates_open_task(officer_ctx) -> None:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(LoanApplication, projection_result()))
    assignee = uuid4()

    task = await tasks.create_task(
        db,
        officer_ctx,
        TaskCreate(application_id=uuid4(), title="  Call client ", assigned_to=assignee),
    )

    assert task.title == "Call client"
    assert task.status == TaskStatus.OPEN
    assert task.assigned_to == assignee
    assert db.added_of(AuditLog)[0].action == "task.created"


@pytest.mark.asyncio
async def test_client_cannot_create_tasks(client_ctx, fake_db) -> None:
    with pytest.raises(Forbidden):
        await tasks.create_task(fake_db, client_ctx, TaskCreate(application_id=uuid4(), title="x"))


@pytest.mark.asyncio
async def test_update_applies_only_provided_fields(admin_ctx) -> None:
    assignee = uuid4()
    task = _task(assigned_to=assignee)
    db = FakeAsyncSession()
    db.on_get(Task, task.id, task)

    await tasks.update_task(db, admin_ctx, task.id, TaskUpdate(title="Verify payslips"))

    assert task.title == "Verify payslips"
    assert task.assigned_to == assignee
    assert task.due_date == date(2026, 3, 1)
    audit = db.added_of(AuditLog)[0]
    assert audit.changes["title"] == {"from": "Collect payslips", "to": "Verify payslips"}


@pytest.mark.asyncio
async def test_update_can_clear_due_date(admin_ctx) -> None:
    task = _task()
    db = FakeAsyncSession()
    db.on_get(Task, task.id, task)

    await tasks.update_task(db, admin_ctx, task.id, TaskUpdate(due_date=None))

    assert task.due_date is None


@pytest.mark.asyncio
async def test_assignee_completes_task_with_note() -> None:
    ctx = make_actor(RoleName.INTERN)
    task = _task(assigned_to=ctx.user_id)
    db = FakeAsyncSession()
    db.on_get(Task, task.id, task)

    await tasks.complete_task(db, ctx, task.id, note="  Received all payslips ")

    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None
    note = db.added_of(Note)[0]
    assert note.body == "Received all payslips"
    assert note.application_id == task.application_id
    assert [a.action for a in db.added_of(AuditLog)] == ["note.created", "task.completed"]


@pytest.mark.asyncio
async def test_unrelated_worker_cannot_complete_task() -> None:
    ctx = make_actor(RoleName.ORIGINATOR)
    task = _task(assigned_to=uuid4())
    db = FakeAsyncSession()
    db.on_get(Task, task.id, task)
    db.on_execute(entity_handler(LoanApplication, projection_result(assigned_to=uuid4())))

    with pytest.raises(Forbidden):
        await tasks.complete_task(db, ctx, task.id)
    assert task.status == TaskStatus.OPEN


@pytest.mark.asyncio
async def test_missing_task_is_not_found(admin_ctx, fake_db) -> None:
    with pytest.raises(NotFound):
        await tasks.complete_task(fake_db, admin_ctx, uuid4())


@pytest.mark.asyncio
async def test_list_tasks_scopes_non_staff_to_own_work() -> None:
    ctx = make_actor(RoleName.CLIENT)
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Task, FakeResult(items=[])))

    await tasks.list_tasks(db, ctx)

    sql = str(db.executed[0])
    assert "tasks.assigned_to = " in sql
    assert "clients.user_id = " in sql


@pytest.mark.asyncio
async def test_create_note_requires_access() -> None:
    ctx = make_actor(RoleName.CLIENT)
    db = FakeAsyncSession()
    db.on_execute(entity_handler(LoanApplication, projection_result(owner=uuid4())))

    with pytest.raises(Forbidden):
        await tasks.create_note(db, ctx, uuid4(), "hello")
