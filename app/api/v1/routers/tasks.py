from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.tasks import TaskComplete, TaskCreate, TaskOut, TaskUpdate
from app.services import tasks

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskOut], summary="List tasks visible to the caller")
async def list_tasks(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
    application_id: UUID | None = Query(default=None),
    assigned_to_me: bool = Query(default=False),
) -> list[TaskOut]:
    rows = await tasks.list_tasks(db, ctx, application_id=application_id, assigned_to_me=assigned_to_me)
    return [TaskOut.model_validate(row) for row in rows]


@router.post("", response_model=TaskOut, status_code=201, summary="Create a task on an application")
async def create_task(
    payload: TaskCreate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskOut:
    task = await tasks.create_task(db, ctx, payload)
    await db.commit()
    return TaskOut.model_validate(task)


@router.put("/{task_id}", response_model=TaskOut, summary="Update a task")
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskOut:
    task = await tasks.update_task(db, ctx, task_id, payload)
    await db.commit()
    return TaskOut.model_validate(task)


@router.post("/{task_id}/complete", response_model=TaskOut, summary="Complete a task")
async def complete_task(
    task_id: UUID,
    payload: TaskComplete | None = None,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskOut:
    task = await tasks.complete_task(db, ctx, task_id, payload.note if payload else None)
    await db.commit()
    return TaskOut.model_validate(task)
