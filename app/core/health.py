from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"

# Only the database gates readiness; redis backs throttling and may be degraded.
REQUIRED_CHECKS = frozenset({"database"})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def _check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
    except Exception as exc:
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    database, redis = await asyncio.gather(_check_db(), _check_redis())
    checks = {"database": database, "redis": redis}
    ready = all(checks[name]["status"] == "ok" for name in REQUIRED_CHECKS)
    healthy = all(check["status"] == "ok" for check in checks.values())
    return {
        "status": "ok" if healthy else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": _now(),
        "checks": checks,
    }
