from __future__ import annotations

from functools import lru_cache

from redis import Redis

from .settings import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=2, socket_timeout=2)


def check_redis_health() -> bool:
    return bool(get_redis_client().ping())
