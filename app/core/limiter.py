from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings


def default_limit() -> str:
    return f"{settings.rate_limit_per_minute}/minute"


# Every route shares the per-address budget; health probes opt out with ``@limiter.exempt``.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[default_limit()],
    storage_uri=settings.redis_url,
    enabled=settings.rate_limit_enabled,
)

__all__ = ["default_limit", "limiter"]
