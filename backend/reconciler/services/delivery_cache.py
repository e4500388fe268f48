"""
Redis cache of settled payment events.

CACHING STRATEGY
================

What we cache:
  - The ReconcileResult of a payment id whose outcome is settled, i.e. a
    redelivery would be a no-op anyway (created, updated, already_confirmed,
    already_finalized, invalid_cart_data)
  - Cache key pattern: "reconcile:settled:{payment_id}"

Why:
  - The provider redelivers events, sometimes many times in a burst
  - A hit answers the redelivery without touching the database

What we never cache:
  - no_bookings_created / missing_customer_data / customer_resolution_failed:
    a later retry may succeed once the catalog or customer data is fixed

The cache is advisory. The database constraints are what guarantee
exactly-once bookings; on any Redis error we fail open and run the full
database-backed path. TTL-based expiry only.
"""

import json
import time
from typing import Optional

import redis.asyncio as redis
from reconciler.core.config import get_settings
from reconciler.core.logging import get_logger
from reconciler.core.metrics import record_settled_cache
from reconciler.schemas.reconciliation import ReconcileResult

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None
_retry_after: float = 0.0


async def get_redis() -> Optional[redis.Redis]:
    """
    Shared client, or None when Redis is disabled or unreachable.

    After a failed connect no new attempt is made for REDIS_RETRY_SECONDS,
    so an outage costs one connect timeout rather than one per delivery.
    """
    global _redis_client, _retry_after

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client
    if time.monotonic() < _retry_after:
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except Exception as e:
        _retry_after = time.monotonic() + settings.REDIS_RETRY_SECONDS
        logger.error("redis_connection_failed", error=str(e), retry_in_s=settings.REDIS_RETRY_SECONDS)
        await client.aclose()
        return None

    logger.info("redis_connected", url=settings.REDIS_URL)
    _redis_client = client
    return _redis_client


async def close_redis() -> None:
    global _redis_client, _retry_after
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    _retry_after = 0.0


def _make_settled_key(payment_id: str) -> str:
    return f"reconcile:settled:{payment_id}"


async def get_settled_result(payment_id: str) -> Optional[ReconcileResult]:
    """Cached result for an already-settled payment, or None."""
    client = await get_redis()
    if not client:
        return None

    key = _make_settled_key(payment_id)
    try:
        data = await client.get(key)
    except Exception as e:
        logger.error("settled_cache_get_error", key=key, error=str(e))
        record_settled_cache("error")
        return None

    if not data:
        record_settled_cache("miss")
        return None

    try:
        result = ReconcileResult.model_validate(json.loads(data))
    except ValueError as e:
        logger.warning("settled_cache_corrupt_entry", key=key, error=str(e))
        record_settled_cache("error")
        return None

    record_settled_cache("hit")
    logger.debug("settled_cache_hit", key=key)
    return result.model_copy(update={"cached": True})


async def mark_settled(result: ReconcileResult) -> None:
    """Remember a settled outcome. Unsettled outcomes are ignored."""
    if not result.is_settled or result.cached:
        return

    client = await get_redis()
    if not client:
        return

    key = _make_settled_key(result.payment_id)
    try:
        await client.setex(key, settings.SETTLED_PAYMENT_TTL, result.model_dump_json())
        logger.debug("settled_cache_set", key=key, ttl=settings.SETTLED_PAYMENT_TTL)
    except Exception as e:
        logger.error("settled_cache_set_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Settled-cache health for /health."""
    if not settings.REDIS_ENABLED:
        return {"status": "disabled"}

    client = await get_redis()
    if not client:
        return {"status": "unavailable"}

    try:
        info = await client.info("stats")
    except Exception as e:
        return {"status": "error", "error": str(e)}
    return {
        "status": "connected",
        "hits": info.get("keyspace_hits", 0),
        "misses": info.get("keyspace_misses", 0),
    }
