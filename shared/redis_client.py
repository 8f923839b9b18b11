# shared/redis_client.py
import os
from typing import Optional

import redis.asyncio as redis

REDIS_URL = os.getenv("REDIS_URL")
if not REDIS_URL:
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
    REDIS_DB = int(os.getenv("REDIS_DB", "0"))

    if REDIS_PASSWORD:
        REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"
    else:
        REDIS_URL = f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"

REVOKED_TOKEN_PREFIX = "revoked_token"

_redis_client: Optional[redis.Redis] = None


async def init_redis():
    """Initialize Redis connection"""
    global _redis_client

    _redis_client = redis.from_url(
        REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        health_check_interval=30,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )

    await _redis_client.ping()


async def close_redis():
    """Close Redis connection"""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis() -> redis.Redis:
    """Dependency to get Redis client"""
    if not _redis_client:
        await init_redis()
    return _redis_client


def revoked_token_key(token: str) -> str:
    return f"{REVOKED_TOKEN_PREFIX}:{token}"


async def revoke_token(client: redis.Redis, token: str, ttl_seconds: int) -> None:
    """Mark a token as revoked until it would have expired anyway"""
    await client.setex(revoked_token_key(token), max(ttl_seconds, 1), "1")


async def is_token_revoked(client: redis.Redis, token: str) -> bool:
    return bool(await client.exists(revoked_token_key(token)))
