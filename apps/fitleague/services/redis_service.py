"""
Redis service providing a shared Redis client singleton.

Redis backs the short-lived caches (resolved settings, per-user rejected
summaries) so that every API instance sees the same cached values and writes
can invalidate them. When Redis is unreachable the caches are simply skipped.

Usage:
    from fitleague.services.redis_service import get_redis_client

    async def my_function():
        redis = await get_redis_client()
        if redis:
            await redis.set("key", "value")
"""

import json
import logging
import os
from typing import Any, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5

_redis_client: Optional[Redis] = None
_connection_tested: bool = False


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create the Redis client singleton.

    Returns:
        Redis client or None if the connection fails
    """
    global _redis_client, _connection_tested

    if _redis_client is not None and _connection_tested:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, recreating client: {e}")
            await close_redis_connection()

    try:
        client_kwargs = {
            "host": REDIS_HOST,
            "port": REDIS_PORT,
            "db": REDIS_DB,
            "decode_responses": True,
            "socket_connect_timeout": SOCKET_CONNECT_TIMEOUT,
            "socket_timeout": SOCKET_TIMEOUT,
            "retry_on_timeout": True,
        }
        if REDIS_PASSWORD:
            client_kwargs["password"] = REDIS_PASSWORD

        _redis_client = Redis(**client_kwargs)
        await _redis_client.ping()
        _connection_tested = True
        logger.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
        return _redis_client
    except Exception as e:
        logger.warning(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}: {e}")
        _redis_client = None
        _connection_tested = False
        return None


async def close_redis_connection() -> None:
    """Close the Redis connection (called on application shutdown)."""
    global _redis_client, _connection_tested

    if _redis_client is not None:
        try:
            await _redis_client.close()
            logger.info("Closed Redis connection")
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None
            _connection_tested = False


async def redis_get(key: str) -> Optional[str]:
    """Get a value, or None if missing or Redis is unavailable."""
    try:
        client = await get_redis_client()
        if client:
            return await client.get(key)
    except Exception as e:
        logger.warning(f"Redis GET error for key {key}: {e}")
    return None


async def redis_set(key: str, value: str, expiry_seconds: Optional[int] = None) -> bool:
    """Set a value with optional TTL. Returns False when Redis is unavailable."""
    try:
        client = await get_redis_client()
        if client:
            if expiry_seconds:
                await client.setex(key, expiry_seconds, value)
            else:
                await client.set(key, value)
            return True
    except Exception as e:
        logger.warning(f"Redis SET error for key {key}: {e}")
    return False


async def redis_delete(*keys: str) -> bool:
    try:
        client = await get_redis_client()
        if client and keys:
            await client.delete(*keys)
            return True
    except Exception as e:
        logger.warning(f"Redis DELETE error for keys {keys}: {e}")
    return False


async def redis_get_json(key: str) -> Optional[Any]:
    """Get and decode a JSON value. Undecodable values are treated as a miss."""
    raw = await redis_get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        logger.warning(f"Discarding undecodable cached value for key {key}")
        return None


async def redis_set_json(key: str, value: Any, expiry_seconds: Optional[int] = None) -> bool:
    return await redis_set(key, json.dumps(value, default=str), expiry_seconds)
