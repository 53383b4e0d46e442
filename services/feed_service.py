"""
Feed Integration Service.

This module builds the scrollable feed: a page of videos with active ads
interleaved at a fixed stride.

Key Components:
- `integrate_ads`: A pure function. After every ``stride``-th video it places
  the next ad, except after the last video of the page. The ad cursor advances
  modulo the ad list; by default each ad is used at most once per page, and
  with ``repeat_ads=True`` the ads cycle to fill every slot.
- `FeedService`: Fetches the video page and the active ads and combines them
  into a `FeedPage`.

Architectural Design:
- Graceful Degradation: Ads are optional content. If fetching or integrating
  them fails, the failure is logged and the page is served with videos only.
  A failure fetching the videos themselves propagates.
"""

import logging
from typing import List, Optional, Sequence

from core.config import FeedSettings
from core.exceptions import FeedClientError
from core.models import Ad, FeedItem, FeedPage, Video
from services.ad_service import AdService
from services.video_service import VideoService

logger = logging.getLogger(__name__)


def integrate_ads(
    videos: Sequence[Video],
    ads: Sequence[Ad],
    stride: int,
    repeat_ads: bool = False,
) -> List[FeedItem]:
    """Interleave ``ads`` into ``videos`` after every ``stride`` videos.

    Without ``repeat_ads`` the result holds
    ``len(videos) + min(len(ads), (len(videos) - 1) // stride)`` items.
    """
    if stride < 1:
        raise ValueError("stride must be at least 1")
    if not ads:
        return list(videos)

    items: List[FeedItem] = []
    ad_index = 0
    placed = 0
    last = len(videos)
    for position, video in enumerate(videos, start=1):
        items.append(video)
        if position % stride != 0 or position == last:
            continue
        if not repeat_ads and placed >= len(ads):
            continue
        items.append(ads[ad_index])
        ad_index = (ad_index + 1) % len(ads)
        placed += 1
    return items


class FeedService:
    """Combines video pages with active ads"""

    def __init__(
        self,
        videos: VideoService,
        ads: AdService,
        settings: Optional[FeedSettings] = None,
    ):
        self.videos = videos
        self.ads = ads
        self.settings = settings or FeedSettings()

    async def get_feed(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        stride: Optional[int] = None,
        force_refresh: bool = False,
        video_type: Optional[str] = None,
        repeat_ads: bool = False,
    ) -> FeedPage:
        """Return one feed page with ads interleaved"""
        if stride is None:
            stride = self.settings.ad_stride
        video_page = await self.videos.list_videos(
            page=page, limit=limit, video_type=video_type, force_refresh=force_refresh
        )

        items: List[FeedItem] = list(video_page.videos)
        try:
            active_ads = await self.ads.list_active_ads(force_refresh=force_refresh)
            items = integrate_ads(video_page.videos, active_ads, stride, repeat_ads)
        except (FeedClientError, ValueError) as e:
            logger.warning(f"Serving feed page {page} without ads: {e}")

        ad_count = len(items) - len(video_page.videos)
        logger.debug(
            f"Feed page {page}: {len(video_page.videos)} videos, {ad_count} ads",
            extra={"page": page, "stride": stride},
        )
        return FeedPage(
            items=items,
            has_more=video_page.has_more,
            total=video_page.total,
            page=page,
            ad_count=ad_count,
        )
