from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.notifications import NotificationOut
from app.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut], summary="List the caller's notifications")
async def list_notifications(
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
    unread_only: bool = Query(default=False),
) -> list[NotificationOut]:
    rows = await notifications.list_notifications(db, ctx, unread_only=unread_only)
    return [NotificationOut.model_validate(row) for row in rows]


@router.post("/{notification_id}/read", response_model=NotificationOut, summary="Mark a notification as read")
async def mark_notification_read(
    notification_id: UUID,
    ctx: deps.ActorContext = Depends(deps.get_actor),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    notification = await notifications.mark_read(db, ctx, notification_id)
    await db.commit()
    return NotificationOut.model_validate(notification)
