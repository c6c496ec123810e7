from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFound
from app.models.notification import Notification
from app.schemas.audit import NotificationReadEvent
from app.schemas.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationStatus,
)
from app.services.audit import record_audit_log

logger = logging.getLogger(__name__)

LIST_LIMIT = 200


def enqueue_notification(
    db: AsyncSession,
    user_id,
    payload: NotificationPayload,
    *,
    sent_at: datetime | None = None,
) -> Notification | None:
    """Stage an in-app notification; rows with ``sent_at`` are already delivered."""
    try:
        notification = Notification(
            user_id=user_id,
            channel=NotificationChannel.IN_APP,
            title=payload.title,
            message=payload.message,
            status=NotificationStatus.SENT if sent_at else NotificationStatus.PENDING,
            sent_at=sent_at,
        )
        notification.typed_payload = payload
    except (TypeError, ValueError):
        logger.warning("Dropped %s notification for user %s", payload.type, user_id, exc_info=True)
        return None
    db.add(notification)
    return notification


def notify_users(
    db: AsyncSession,
    recipients: Iterable,
    payload: NotificationPayload,
    *,
    exclude=None,
) -> list[Notification]:
    created: list[Notification] = []
    seen = set()
    for user_id in recipients:
        if user_id is None or user_id == exclude or user_id in seen:
            continue
        seen.add(user_id)
        notification = enqueue_notification(db, user_id, payload)
        if notification is not None:
            created.append(notification)
    return created


async def list_notifications(
    db: AsyncSession,
    ctx: deps.ActorContext,
    *,
    unread_only: bool = False,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == ctx.user_id)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    stmt = stmt.order_by(Notification.created_at.desc()).limit(LIST_LIMIT)
    return (await db.execute(stmt)).scalars().all()


async def mark_read(db: AsyncSession, ctx: deps.ActorContext, notification_id) -> Notification:
    stmt = select(Notification).where(
        Notification.id == notification_id,
        Notification.user_id == ctx.user_id,
    )
    notification = (await db.execute(stmt)).scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found")
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
    if notification.status == NotificationStatus.SENT:
        notification.status = NotificationStatus.READ
    db.add(notification)
    record_audit_log(
        db,
        actor_id=ctx.user_id,
        resource_type="notification",
        resource_id=notification.id,
        event=NotificationReadEvent(notification_id=notification.id),
    )
    return notification
