"""ARQ (Async Redis Queue) configuration utilities.

Parses the Redis connection from settings and turns the bridge's
"every N minutes" intervals into ARQ cron minute sets.
"""

from urllib.parse import urlparse

from arq.connections import RedisSettings
from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    """Parse REDIS_URL from application settings into ARQ RedisSettings."""
    settings = get_settings()
    parsed = urlparse(settings.REDIS_URL)

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or "0"),
        password=parsed.password,
    )


def every_n_minutes(interval: int, offset: int = 0) -> set[int]:
    """Minutes of the hour matching ``*/interval`` (shifted by ``offset``)."""
    if interval < 1:
        raise ValueError("interval must be at least one minute")
    return {(minute + offset) % 60 for minute in range(0, 60, interval)}
