# mailsync/routes/health.py
"""
Health check endpoints with database pool and Redis monitoring.
"""

import time

from fastapi import APIRouter

from mailsync.config import settings
from mailsync.db.pool import db_health_check
from mailsync.infrastructure.observability.logging import log_health_check
from mailsync.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "mailsync"}


@router.get("/readyz")
async def readyz():
    """Readiness check covering Redis and the database pool."""
    checks = {}
    overall_ok = True

    # 1) Redis. Only the message id cache depends on it, so it does not gate readiness.
    t0 = time.time()
    redis_ok = await fast_redis.ping()
    redis_latency = round((time.time() - t0) * 1000, 1)
    checks["redis"] = {
        "ok": redis_ok,
        "latency_ms": redis_latency,
        "required": False,
        "cache_enabled": settings.DEDUP_CACHE_ENABLED,
    }
    log_health_check("redis", redis_ok, redis_latency)

    # 2) Database pool
    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = bool(db_health.get("healthy", False))
    db_latency = round((time.time() - t0) * 1000, 1)

    checks["database"] = {"ok": is_healthy, "latency_ms": db_latency}
    if "pool_stats" in db_health:
        checks["database"]["pool_stats"] = db_health["pool_stats"]
    if "warnings" in db_health:
        checks["database"]["warnings"] = db_health["warnings"]
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    log_health_check("database", is_healthy, db_latency, error=checks["database"].get("error"))

    overall_ok = overall_ok and is_healthy

    checks["configuration"] = {
        "ok": True,
        "environment": settings.environment,
        "dedup_error_strategy": settings.DEDUP_ERROR_STRATEGY,
        "dedup_batch_concurrency": settings.DEDUP_BATCH_CONCURRENCY,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
