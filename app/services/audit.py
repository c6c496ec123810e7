from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.audit_log import AuditLog
from app.schemas.audit import AuditEvent

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    if model is None:
        return {}
    excluded = set(exclude or [])
    data: dict[str, Any] = {}
    for column in model.__table__.columns:
        name = column.name
        if name in excluded:
            continue
        data[name] = getattr(model, name)
    return serialize_for_audit(data)


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        for key in set(old.keys()) | set(new.keys()):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def _build_summary(action: str, changes: dict[str, dict[str, Any]] | None) -> str:
    if not changes:
        return action
    keys = sorted(changes.keys())
    snippet = ", ".join(keys[:3])
    suffix = "..." if len(keys) > 3 else ""
    return f"{action}: {snippet}{suffix}"


def record_audit_log(
    db: AsyncSession,
    *,
    actor_id,
    resource_type: str,
    resource_id,
    event: AuditEvent,
    old_value: Any | None = None,
) -> AuditLog | None:
    """Stage an audit row in the caller's transaction and mirror it to the audit log stream.

    Auditing must never fail the operation being audited, so a payload that cannot be
    serialized is logged and dropped.
    """
    try:
        serialized_new = event.model_dump(mode="json")
        serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    except (TypeError, ValueError):
        logger.warning(
            "Dropped audit entry %s for %s/%s", event.action, resource_type, resource_id, exc_info=True
        )
        return None

    changes = None
    if serialized_old is not None:
        changes = _diff_values(serialized_old, serialized_new) or None
    summary = _build_summary(event.action, changes)
    entry = AuditLog(
        actor_id=actor_id,
        action=event.action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        old_value=serialized_old,
        new_value=serialized_new,
        changes=changes,
        summary=summary,
    )
    db.add(entry)
    audit_logger.info(
        summary,
        extra={
            "event": {
                "action": event.action,
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "actor_id": str(actor_id) if actor_id else None,
            }
        },
    )
    return entry
