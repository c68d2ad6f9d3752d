from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from fastapi import HTTPException, status
from redis.exceptions import RedisError

from ..redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _current_bucket(window_seconds: int) -> int:
    now = int(datetime.now(UTC).timestamp())
    return now // window_seconds


def enforce_user_rate_limit(
    user_id: uuid.UUID,
    bucket_name: str,
    max_requests: int,
    window_seconds: int = 60,
) -> None:
    if max_requests <= 0:
        return
    bucket = _current_bucket(window_seconds)
    key = f"ratelimit:{user_id}:{bucket_name}:{bucket}"
    try:
        redis = get_redis_client()
        current = int(redis.incr(key))
        if current == 1:
            redis.expire(key, max(1, window_seconds))
    except RedisError:
        logger.warning("rate limiter unavailable; allowing %s", bucket_name)
        return
    if current > max_requests:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"rate limit exceeded for {bucket_name}",
        )
