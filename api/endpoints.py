"""
API Endpoints for the Feed Gateway.

This module exposes the feed data access layer over HTTP so the integrated
feed can be consumed by clients that do not embed the Python services.

Endpoints Provided:
- `/feed`: One page of videos with active ads interleaved.
- `/videos/{video_id}`: A single video.
- `/ads/active`: The currently active ads.
- `/cache/invalidate`: Drops cache entries matching a glob pattern.

Architectural Design:
- Dependency Injection: The services are built once at startup, stored on
  `app.state` and injected into the endpoints through `api.dependencies`.
- Error Handling: Endpoints let `FeedClientError` propagate; the error
  handling middleware maps it to the matching status code.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import (
    get_ad_service,
    get_cache_manager,
    get_feed_service,
    get_video_service,
)
from core.cache import CacheManager
from core.logging_config import log_function_call
from core.models import Ad, FeedPage, Video
from services.ad_service import AdService
from services.feed_service import FeedService
from services.video_service import VideoService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feed"])


class InvalidateRequest(BaseModel):
    pattern: str = Field(min_length=1)


class InvalidateResponse(BaseModel):
    pattern: str
    removed: int


@router.get("/feed", response_model=FeedPage)
@log_function_call(logger)
async def get_feed(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    stride: Optional[int] = Query(None, ge=1),
    video_type: Optional[str] = Query(None, alias="videoType"),
    refresh: bool = False,
    feed: FeedService = Depends(get_feed_service),
):
    """Return one page of the feed with ads interleaved"""
    return await feed.get_feed(
        page=page,
        limit=limit,
        stride=stride,
        force_refresh=refresh,
        video_type=video_type,
    )


@router.get("/videos/{video_id}", response_model=Video)
@log_function_call(logger)
async def get_video(
    video_id: str,
    refresh: bool = False,
    videos: VideoService = Depends(get_video_service),
):
    return await videos.get_video(video_id, force_refresh=refresh)


@router.get("/ads/active", response_model=List[Ad])
async def get_active_ads(
    refresh: bool = False,
    ads: AdService = Depends(get_ad_service),
):
    return await ads.list_active_ads(force_refresh=refresh)


@router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(
    request: InvalidateRequest,
    cache: CacheManager = Depends(get_cache_manager),
):
    """Drop every cache entry whose key matches ``pattern``"""
    removed = await cache.invalidate_pattern(request.pattern)
    logger.info(
        f"Invalidated {removed} cache entries",
        extra={"pattern": request.pattern, "removed": removed},
    )
    return InvalidateResponse(pattern=request.pattern, removed=removed)
