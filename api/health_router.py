"""
Health and Monitoring Router.

This module provides public endpoints for health checks and operational
visibility into the feed gateway.

Endpoints Provided:
- `/healthcheck`: A basic, lightweight health check to confirm that the
  gateway is running.
- `/monitoring/cache/stats`: Hit, miss and entry counts of the feed cache.
- `/monitoring/upstream`: Whether the feed backend answers its health
  endpoint, plus the cache self-check.

Architectural Design:
- Separation of Concerns: Health and monitoring endpoints are grouped into their
  own routers (`health_router` and `monitoring_router`) to keep them separate
  from the feed routes.
- Graceful Degradation: `/monitoring/upstream` reports a "degraded" status when
  the backend or the cache is unhealthy instead of failing the request.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.dependencies import get_cache_manager, get_settings, get_video_service
from core.cache import CacheManager
from core.config import FeedSettings
from core.logging_config import get_logger
from services.video_service import VideoService

logger = get_logger(__name__)

SERVICE_NAME = "Vayu Feed Gateway"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint

    Returns:
        Dict with status, timestamp, and version info
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/cache/stats")
async def get_cache_stats(cache: CacheManager = Depends(get_cache_manager)) -> Dict[str, Any]:
    """Get feed cache statistics"""
    logger.info("Cache stats requested")
    stats = await cache.stats()
    return {"cache_stats": stats, "timestamp": _now()}


@monitoring_router.get("/upstream")
async def upstream_health(
    videos: VideoService = Depends(get_video_service),
    cache: CacheManager = Depends(get_cache_manager),
    settings: FeedSettings = Depends(get_settings),
) -> Dict[str, Any]:
    """Check the feed backend and the cache"""
    logger.info("Upstream health check requested")

    backend_ok = await videos.check_health()
    cache_health = await cache.health_check()

    status = "healthy"
    if not backend_ok or cache_health.get("status") != "healthy":
        status = "degraded"

    return {
        "status": status,
        "timestamp": _now(),
        "components": {
            "backend": {
                "status": "healthy" if backend_ok else "unreachable",
                "base_url": settings.base_url,
            },
            "cache": cache_health,
        },
    }
