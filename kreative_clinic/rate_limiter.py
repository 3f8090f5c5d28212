"""
Hybrid in-memory + Redis rate limiting utilities
Counts live in process memory and are synced to Redis periodically
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import RATE_LIMIT_ENABLED

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None
redis_retry_at = 0.0

# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
REDIS_RETRY_INTERVAL = 30  # Wait before reconnecting after a failed attempt
last_cleanup_time = 0


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared Redis client

    After a failed connection attempt, raises ConnectionError without
    reconnecting until REDIS_RETRY_INTERVAL has passed.
    """
    global redis_client, redis_retry_at

    if redis_client is None:
        if time.time() < redis_retry_at:
            raise ConnectionError("Redis unavailable (waiting before reconnecting)")

        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        logger.info("🔄 Initializing Redis connection...")
        try:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            redis_client = client
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            redis_retry_at = time.time() + REDIS_RETRY_INTERVAL
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def check_rate_limit(key: str, limit: int, window_seconds: int) -> tuple[bool, int, int]:
    """
    Count one hit against key.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())

    cleanup_expired_cache()

    with cache_lock:
        entry = memory_cache.get(key)
        if entry is None or current_time >= entry["reset_time"]:
            entry = {"count": 0, "reset_time": current_time + window_seconds, "last_redis_sync": 0}
            memory_cache[key] = entry

        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1

        count = entry["count"]
        ttl = max(0, entry["reset_time"] - current_time)
        needs_sync = current_time - entry["last_redis_sync"] >= MEMORY_CACHE_SYNC_INTERVAL
        if needs_sync:
            # Claimed before the network call so concurrent hits do not sync too
            entry["last_redis_sync"] = current_time

    # Memory-only counting keeps working without Redis
    if needs_sync:
        try:
            get_redis_client().set(key, count, ex=window_seconds)
        except Exception as e:
            logger.warning(f"⚠️ Failed to sync rate limit to Redis: {e}")

    return is_allowed, count, ttl


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a per-IP rate limiter dependency

    Example usage:
        login_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="login")
    """

    def rate_limiter(request: Request):
        # Sync so FastAPI runs it in the threadpool; a Redis sync may block
        if not RATE_LIMIT_ENABLED:
            return

        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        key = f"{key_prefix}:{client_ip}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds)
        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Too many attempts. Please try again in {ttl} seconds.",
                    "retry_after": ttl,
                },
                headers={"Retry-After": str(ttl)},
            )

    return rate_limiter
