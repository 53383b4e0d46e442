"""
Video Fetching, Engagement and Upload Service.

This module defines the `VideoService`, the feed's fetcher. It retrieves pages
of videos, single videos and a user's uploads from the backend, normalizes them
into typed `Video` records and serves repeat reads from the shared cache. It
also owns the write paths that touch a video: likes, comments, shares,
deletion and the multipart upload with its processing wait loop.

Key Components:
- `VideoService`: The service class. Reads go through `CacheManager.get` so a
  fresh page or video is never fetched twice; writes go straight to the
  backend and patch any cached copy of the video in place.
- Video Type Labels: The app shows the category ``yug``, which the backend
  stores as ``yog``. Only ``yog`` and ``sneha`` are forwarded as filters.
- Processing Wait: After an upload the backend transcodes the file to HLS.
  `wait_for_processing` polls the status endpoint until the video is ready,
  fails, or the wait budget runs out.

Architectural Design:
- Dependency Injection: The HTTP client, the cache, the clock and the sleep
  function are all constructor arguments. The gateway wires the real ones at
  startup; tests pass fakes.
- Error Mapping: A 404 becomes `NotFoundError`, any other non-2xx becomes
  `ServerError` carrying the upstream status and the backend's `{error}` text.
  Best-effort side effects (share counts, cache sweeps) log and continue.
"""

import asyncio
import logging
import mimetypes
import os
import time
from typing import Any, Awaitable, Callable, List, Optional

import aiohttp

from core.cache import CacheManager, cache_key
from core.config import FeedSettings
from core.exceptions import (
    FeedClientError,
    NotFoundError,
    PayloadValidationError,
    PermissionDeniedError,
    RequestFailedError,
    RequestTimeoutError,
    ServerError,
    UploadProcessingError,
)
from core.models import (
    Comment,
    ProcessingStatus,
    UploadRequest,
    UploadResult,
    Video,
    VideoPage,
    parse_comments,
    parse_many,
)
from providers.http_client import ApiClient, HttpResponse

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 100 * 1024 * 1024

# App label -> backend value
VIDEO_TYPE_ALIASES = {"yug": "yog"}
FILTERABLE_VIDEO_TYPES = {"yog", "sneha"}

ProgressCallback = Callable[[ProcessingStatus], Any]


def backend_video_type(video_type: Optional[str]) -> Optional[str]:
    """Map an app video type label to the backend filter value, if any"""
    if not video_type:
        return None
    normalized = video_type.strip().lower()
    normalized = VIDEO_TYPE_ALIASES.get(normalized, normalized)
    return normalized if normalized in FILTERABLE_VIDEO_TYPES else None


def video_page_key(page: int, limit: int, video_type: Optional[str] = None) -> str:
    return cache_key("videos", "page", page, "limit", limit, video_type)


def video_key(video_id: str) -> str:
    return cache_key("video", video_id)


def _list_payload(payload: Any, field: str) -> List[Any]:
    """Accept either a bare JSON list or ``{field: [...]}``"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(field), list):
        return payload[field]
    return []


class VideoService:
    """Fetcher and write paths for videos"""

    def __init__(
        self,
        client: ApiClient,
        cache: CacheManager,
        settings: Optional[FeedSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.cache = cache
        self.settings = settings or FeedSettings()
        self.clock = clock
        self._sleep = sleep

    @property
    def base_url(self) -> str:
        return self.client.base_url

    # Reads

    async def list_videos(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        video_type: Optional[str] = None,
        force_refresh: bool = False,
    ) -> VideoPage:
        """Fetch one page of videos, served from cache while fresh"""
        if page < 1:
            raise ValueError("page must be at least 1")
        limit = limit or self.settings.page_size
        backend_type = backend_video_type(video_type)

        async def fetch() -> VideoPage:
            params = {"page": page, "limit": limit}
            if backend_type:
                params["videoType"] = backend_type
            response = await self.client.get(
                "/api/videos", params=params, token=await self.client.get_token()
            )
            response.raise_for_status("List videos")
            return self._parse_page(response, page)

        return await self.cache.get(
            video_page_key(page, limit, backend_type),
            fetch,
            cache_type="videos",
            force_refresh=force_refresh,
        )

    async def get_video(self, video_id: str, force_refresh: bool = False) -> Video:
        """Fetch a single video by id"""

        async def fetch() -> Video:
            response = await self.client.get(
                f"/api/videos/{video_id}", token=await self.client.get_token()
            )
            if response.status == 404:
                raise NotFoundError("Video", video_id)
            response.raise_for_status("Get video")
            return Video.from_api(response.json(), self.base_url)

        return await self.cache.get(
            video_key(video_id),
            fetch,
            cache_type="video_metadata",
            force_refresh=force_refresh,
        )

    async def list_user_videos(self, user_id: str, force_refresh: bool = False) -> List[Video]:
        """Fetch every video uploaded by ``user_id``"""

        async def fetch() -> List[Video]:
            response = await self.client.get(
                f"/api/videos/user/{user_id}", token=await self.client.get_token()
            )
            if response.status == 404:
                return []
            response.raise_for_status("List user videos")
            return self._parse_videos(_list_payload(response.json(), "videos"))

        return await self.cache.get(
            cache_key("videos", "user", user_id),
            fetch,
            cache_type="videos",
            force_refresh=force_refresh,
        )

    async def list_comments(self, video_id: str, page: int = 1, limit: int = 20) -> List[Comment]:
        response = await self.client.get(
            f"/api/videos/{video_id}/comments",
            params={"page": page, "limit": limit},
            token=await self.client.get_token(),
        )
        if response.status == 404:
            return []
        response.raise_for_status("List comments")
        return parse_comments(_list_payload(response.json(), "comments"))

    # Engagement

    async def toggle_like(self, video_id: str) -> Video:
        """Like or unlike a video for the signed-in user"""
        token = await self.client.require_token("like videos")
        response = await self.client.post(
            f"/api/videos/{video_id}/like", json_body={}, token=token, action="like videos"
        )
        if response.status == 404:
            raise NotFoundError("Video", video_id)
        response.raise_for_status("Like video")

        updated = Video.from_api(response.json(), self.base_url)
        await self._patch_cached_video(updated)
        return updated

    async def add_comment(self, video_id: str, text: str, user_id: Optional[str] = None) -> List[Comment]:
        """Post a comment and return the video's updated comment list"""
        text = text.strip()
        if not text:
            raise PayloadValidationError("comment", "comment text is empty")
        token = await self.client.require_token("add comments")

        body = {"text": text}
        if user_id:
            body["userId"] = user_id
        response = await self.client.post(
            f"/api/videos/{video_id}/comments", json_body=body, token=token, action="add comments"
        )
        if response.status == 404:
            raise NotFoundError("Video", video_id)
        response.raise_for_status("Add comment")

        comments = parse_comments(_list_payload(response.json(), "comments"))
        await self._patch_cached_comments(video_id, comments)
        return comments

    async def delete_comment(self, video_id: str, comment_id: str) -> List[Comment]:
        token = await self.client.require_token("delete comments")
        response = await self.client.delete(
            f"/api/videos/{video_id}/comments/{comment_id}", token=token, action="delete comments"
        )
        if response.status == 403:
            raise PermissionDeniedError("You can only delete your own comments")
        if response.status == 404:
            raise NotFoundError("Comment", comment_id)
        response.raise_for_status("Delete comment")

        comments = parse_comments(_list_payload(response.json(), "comments"))
        await self._patch_cached_comments(video_id, comments)
        return comments

    async def increment_shares(self, video_id: str) -> bool:
        """Record a share. Failures are logged and never raised."""
        try:
            response = await self.client.post(
                f"/api/videos/{video_id}/share",
                json_body={},
                token=await self.client.get_token(),
                max_attempts=1,
            )
        except FeedClientError as e:
            logger.warning(f"Could not record share for video {video_id}: {e.message}")
            return False
        if not response.ok:
            logger.warning(f"Share for video {video_id} returned status {response.status}")
            return False

        cached = await self.cache.peek(video_key(video_id), "video_metadata", allow_stale=True)
        if isinstance(cached, Video):
            cached.shares += 1
        return True

    async def delete_video(self, video_id: str) -> None:
        token = await self.client.require_token("delete videos")
        response = await self.client.delete(
            f"/api/videos/{video_id}", token=token, action="delete videos"
        )
        if response.status == 403:
            raise PermissionDeniedError(response.error_message("You can only delete your own videos"))
        if response.status == 404:
            raise NotFoundError("Video", video_id)
        if response.status not in (200, 204):
            raise ServerError("Delete video", response.status, response.error_message())

        logger.info(f"Deleted video {video_id}")
        await self.cache.invalidate(video_key(video_id))
        await self.invalidate_feed_pages()

    # Upload

    async def upload_video(self, path: str, request: UploadRequest) -> UploadResult:
        """Upload a video file with its metadata as multipart form data"""
        if not os.path.isfile(path):
            raise PayloadValidationError("upload", f"video file not found: {path}")
        size = os.path.getsize(path)
        if size > MAX_UPLOAD_BYTES:
            raise PayloadValidationError("upload", "video file is too large (max 100MB)")
        token = await self.client.require_token("upload videos")

        with open(path, "rb") as f:
            content = f.read()
        filename = os.path.basename(path)
        content_type = mimetypes.guess_type(filename)[0] or "video/mp4"
        fields = request.to_form_fields()

        def build_form() -> aiohttp.FormData:
            form = aiohttp.FormData()
            form.add_field("video", content, filename=filename, content_type=content_type)
            for name, value in fields.items():
                form.add_field(name, value)
            return form

        logger.info(f"Uploading {filename} ({size} bytes) as '{request.title}'")
        response = await self.client.post(
            "/api/videos/upload",
            form=build_form,
            token=token,
            timeout=self.settings.upload_timeout,
            max_attempts=1,
            action="upload videos",
        )
        if response.status not in (200, 201):
            raise ServerError("Upload video", response.status, response.error_message())

        result = UploadResult.from_api(response.json(), self.base_url, request.title)
        logger.info(f"Uploaded video {result.video_id}, processing status {result.processing_status}")
        await self.invalidate_feed_pages()
        return result

    async def get_processing_status(self, video_id: str) -> Optional[ProcessingStatus]:
        response = await self.client.get(
            f"/api/upload/video/{video_id}/status", token=await self.client.get_token()
        )
        if response.status == 404:
            return None
        response.raise_for_status("Get processing status")
        return ProcessingStatus.from_api(video_id, response.json())

    async def wait_for_processing(
        self,
        video_id: str,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingStatus:
        """Poll until the uploaded video is ready.

        Returns the final status once the backend reports ``completed`` or an
        absolute video URL. Raises `UploadProcessingError` when processing
        fails and `RequestTimeoutError` once ``max_wait`` seconds have passed.
        Transient poll errors are logged and polling continues.
        """
        if poll_interval is None:
            poll_interval = self.settings.upload_poll_interval
        if max_wait is None:
            max_wait = self.settings.upload_max_wait
        started = self.clock()

        while True:
            try:
                status = await self.get_processing_status(video_id)
            except (RequestFailedError, RequestTimeoutError, ServerError, PayloadValidationError) as e:
                logger.warning(f"Processing status poll for {video_id} failed: {e.message}")
                status = None

            if status is not None:
                if on_progress is not None:
                    on_progress(status)
                if status.is_failed:
                    raise UploadProcessingError(video_id, status.error or "unknown error")
                if status.is_complete:
                    logger.info(f"Video {video_id} finished processing")
                    return status

            if self.clock() - started >= max_wait:
                logger.error(f"Gave up waiting for video {video_id} after {max_wait}s")
                raise RequestTimeoutError(max_wait)
            await self._sleep(poll_interval)

    # Health and cache maintenance

    async def check_health(self) -> bool:
        """Return whether the backend health endpoint answers 2xx"""
        try:
            response = await self.client.get("/api/health", max_attempts=1)
        except FeedClientError as e:
            logger.warning(f"Backend health check failed: {e.message}")
            return False
        return response.ok

    async def invalidate_feed_pages(self, pages: Optional[int] = None) -> int:
        """Drop the cached first ``pages`` feed pages, every limit and type"""
        pages = self.settings.invalidate_pages if pages is None else pages
        removed = 0
        for page in range(1, pages + 1):
            removed += await self.cache.invalidate_pattern(f"videos:page:{page}:*")
        return removed

    def _parse_page(self, response: HttpResponse, page: int) -> VideoPage:
        payload = response.json()
        if not isinstance(payload, (dict, list)):
            raise PayloadValidationError("video page", "expected an object or a list")
        videos = self._parse_videos(_list_payload(payload, "videos"))
        meta = payload if isinstance(payload, dict) else {}
        total = meta.get("total")
        return VideoPage(
            videos=videos,
            has_more=meta.get("hasMore") is True,
            total=total if isinstance(total, int) and not isinstance(total, bool) else len(videos),
            page=page,
            etag=response.etag,
        )

    def _parse_videos(self, items: List[Any]) -> List[Video]:
        return parse_many(items, lambda item: Video.from_api(item, self.base_url), "video")

    async def _patch_cached_video(self, updated: Video) -> None:
        cached = await self.cache.peek(video_key(updated.id), "video_metadata", allow_stale=True)
        if isinstance(cached, Video) and cached is not updated:
            cached.merge_engagement(updated)

    async def _patch_cached_comments(self, video_id: str, comments: List[Comment]) -> None:
        cached = await self.cache.peek(video_key(video_id), "video_metadata", allow_stale=True)
        if isinstance(cached, Video):
            cached.comments = list(comments)
