from __future__ import annotations

import redis.asyncio


def create_redis(url: str, *, timeout: float) -> redis.asyncio.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.asyncio.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
