from fastapi import HTTPException, status
from redis.exceptions import RedisError

from app.core.settings import settings
from app.utils.redis_client import get_redis_client


def _ttl(seconds: int) -> int:
    return max(1, seconds)


def _identity(identifier: str) -> str:
    return identifier.strip().lower()


async def rate_limit(key: str, limit: int, window_seconds: int) -> None:
    redis = get_redis_client()
    try:
        pipe = redis.pipeline()
        pipe.incr(f"login_rl:{key}")
        pipe.expire(f"login_rl:{key}", window_seconds)
        count, _ = await pipe.execute()
    except RedisError:
        return
    if count > limit:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")


async def check_lockout(identifier: str) -> None:
    redis = get_redis_client()
    try:
        locked = await redis.get(f"login_lock:{_identity(identifier)}")
    except RedisError:
        return
    if locked:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts; try later",
        )


async def register_login_attempt(identifier: str, success: bool) -> None:
    """Count failed logins per identity and lock it out once the limit is reached."""
    redis = get_redis_client()
    fail_key = f"login_fail:{_identity(identifier)}"
    lock_key = f"login_lock:{_identity(identifier)}"
    window = _ttl(settings.login_lockout_minutes * 60)
    try:
        if success:
            await redis.delete(fail_key, lock_key)
            return
        attempts = await redis.incr(fail_key)
        await redis.expire(fail_key, window)
        if attempts < settings.login_attempt_limit:
            return
        await redis.setex(lock_key, window, 1)
        await redis.delete(fail_key)
    except RedisError:
        return
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Account temporarily locked due to failed attempts",
    )


async def enforce_login_limits(ip: str, email: str) -> None:
    """Throttle login attempts per client address and per account, then refuse locked accounts."""
    per_minute = settings.rate_limit_per_minute
    await rate_limit(f"ip:{ip}", limit=per_minute, window_seconds=60)
    await rate_limit(f"email:{_identity(email)}", limit=per_minute, window_seconds=60)
    await check_lockout(email)
