"""
Core data models for the feed client.

Backend JSON is turned into these pydantic records at the deserialization
boundary (`from_api`) and nothing downstream sees raw dictionaries. Field
aliases and fallbacks mirror what the backend actually sends: Mongo-style
``_id`` keys, counters that sometimes arrive as strings, and authors that may
be flat or nested.

`Video` and `Ad` both carry a literal ``kind`` tag, which makes `FeedItem` a
discriminated union: renderers match on the variant instead of probing for an
``isAd`` flag.
"""


from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.exceptions import PayloadValidationError
from core.logging_config import get_logger
from core.media_urls import absolutize, select_stream_url

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _first_text(payload: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value).strip()
            if text:
                return text
    return None


def _as_count(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def _as_datetime(value: Any, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return default
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return default


def _as_str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


class FeedModel(BaseModel):
    """Base model for feed records"""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class Uploader(FeedModel):
    id: str = "unknown"
    name: str = "Unknown"
    profile_pic: str = ""

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Uploader":
        raw = payload.get("uploader")
        nested = raw if isinstance(raw, Mapping) else {}

        resolved_id = (
            _first_text(nested, "googleId", "google_id", "_id", "id")
            or _first_text(payload, "uploaderId", "uploader_id", "userId", "user_id")
        )
        if resolved_id is None and raw is not None and not isinstance(raw, Mapping):
            resolved_id = str(raw).strip() or None

        return cls(
            id=resolved_id or "unknown",
            name=_first_text(nested, "name", "displayName") or "Unknown",
            profile_pic=_first_text(nested, "profilePic", "profilePicture") or "",
        )


class Comment(FeedModel):
    """A comment owned by exactly one video"""

    id: str
    user_id: str = ""
    user_name: str = "User"
    user_profile_pic: str = ""
    text: str = ""
    created_at: datetime

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Comment":
        if not isinstance(payload, Mapping):
            raise PayloadValidationError("comment", f"expected object, got {type(payload).__name__}")
        author = payload.get("user") if isinstance(payload.get("user"), Mapping) else {}
        return cls(
            id=_first_text(payload, "_id", "id") or "",
            user_id=_first_text(payload, "userId") or _first_text(author, "_id", "googleId") or "",
            user_name=_first_text(payload, "userName") or _first_text(author, "name") or "User",
            user_profile_pic=_first_text(payload, "userProfilePic")
            or _first_text(author, "profilePic")
            or "",
            text=_first_text(payload, "text", "content", "comment") or "",
            created_at=_as_datetime(payload.get("createdAt"), datetime.now(timezone.utc)),
        )


def parse_comments(raw: Any) -> List[Comment]:
    """Parse a comment list, dropping entries that are not valid comments"""
    if not isinstance(raw, list):
        return []
    comments = []
    for item in raw:
        try:
            comments.append(Comment.from_api(item))
        except (PayloadValidationError, ValidationError) as e:
            logger.warning(f"Skipping malformed comment: {e}")
    return comments


class Video(FeedModel):
    """A video as exposed to callers, with absolute media URLs"""

    kind: Literal["video"] = "video"
    id: str
    title: str = "Untitled Video"
    description: Optional[str] = None
    video_url: str = ""
    thumbnail_url: str = ""
    likes: int = 0
    views: int = 0
    shares: int = 0
    liked_by: List[str] = Field(default_factory=list)
    uploader: Uploader = Field(default_factory=Uploader)
    comments: List[Comment] = Field(default_factory=list)
    link: Optional[str] = None
    uploaded_at: datetime = EPOCH
    video_type: str = "reel"
    processing_status: str = "completed"
    processing_progress: int = 100
    processing_error: Optional[str] = None
    hls_playlist_url: Optional[str] = None
    hls_master_playlist_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any], base_url: str) -> "Video":
        """Build a video from a backend object.

        ``video_url`` is the HLS playlist when one is present, otherwise the
        master playlist, otherwise the raw file URL, always absolute.
        """
        if not isinstance(payload, Mapping):
            raise PayloadValidationError("video", f"expected object, got {type(payload).__name__}")
        video_id = _first_text(payload, "_id", "id")
        if not video_id:
            raise PayloadValidationError("video", "missing id")

        liked_by = payload.get("likedBy")
        try:
            return cls(
                id=video_id,
                title=_first_text(payload, "videoName", "title") or "Untitled Video",
                description=_first_text(payload, "description"),
                video_url=select_stream_url(payload, base_url),
                thumbnail_url=absolutize(_first_text(payload, "thumbnailUrl"), base_url),
                likes=_as_count(payload.get("likes")),
                views=_as_count(payload.get("views")),
                shares=_as_count(payload.get("shares")),
                liked_by=list(dict.fromkeys(_as_str_list(liked_by))),
                uploader=Uploader.from_api(payload),
                comments=parse_comments(payload.get("comments")),
                link=_first_text(payload, "link", "externalLink", "websiteUrl"),
                uploaded_at=_as_datetime(payload.get("uploadedAt"), EPOCH),
                video_type=_first_text(payload, "videoType") or "reel",
                processing_status=_first_text(payload, "processingStatus") or "completed",
                processing_progress=_as_count(payload.get("processingProgress", 100)),
                processing_error=_first_text(payload, "processingError"),
                hls_playlist_url=_first_text(payload, "hlsPlaylistUrl"),
                hls_master_playlist_url=_first_text(payload, "hlsMasterPlaylistUrl"),
            )
        except ValidationError as e:
            raise PayloadValidationError("video", str(e)) from e

    def is_liked_by(self, user_id: str) -> bool:
        return user_id in self.liked_by

    def merge_engagement(self, other: "Video") -> None:
        """Copy the mutable counters of a fresher copy of this video in place"""
        self.likes = other.likes
        self.liked_by = list(other.liked_by)
        self.shares = other.shares
        self.views = other.views
        self.comments = list(other.comments)


class Ad(FeedModel):
    """An active ad, fetched independently of videos"""

    kind: Literal["ad"] = "ad"
    id: str
    title: str = ""
    description: str = ""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    link: Optional[str] = None
    ad_type: str = "banner"
    status: str = "active"
    budget: float = 0.0
    impressions: int = 0
    clicks: int = 0
    target_audience: str = "all"
    target_keywords: List[str] = Field(default_factory=list)
    uploader_id: str = ""
    uploader_name: str = ""
    uploader_profile_pic: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any], base_url: str) -> "Ad":
        if not isinstance(payload, Mapping):
            raise PayloadValidationError("ad", f"expected object, got {type(payload).__name__}")
        ad_id = _first_text(payload, "_id", "id")
        if not ad_id:
            raise PayloadValidationError("ad", "missing id")

        link = _first_text(payload, "link", "url", "ctaUrl", "callToActionUrl", "targetUrl")
        call_to_action = payload.get("callToAction")
        if link is None and isinstance(call_to_action, Mapping):
            link = _first_text(call_to_action, "url", "link")

        image_url = _first_text(payload, "imageUrl", "image", "bannerImageUrl", "mediaUrl", "thumbnail")
        video_url = _first_text(payload, "videoUrl")
        try:
            return cls(
                id=ad_id,
                title=_first_text(payload, "title") or "",
                description=_first_text(payload, "description") or "",
                image_url=absolutize(image_url, base_url) or None,
                video_url=absolutize(video_url, base_url) or None,
                link=link,
                ad_type=_first_text(payload, "adType") or "banner",
                status=_first_text(payload, "status") or "active",
                budget=_as_float(payload.get("budget")),
                impressions=_as_count(payload.get("impressions")),
                clicks=_as_count(payload.get("clicks")),
                target_audience=_first_text(payload, "targetAudience") or "all",
                target_keywords=_as_str_list(payload.get("targetKeywords")),
                uploader_id=_first_text(payload, "uploaderId") or "",
                uploader_name=_first_text(payload, "uploaderName") or "",
                uploader_profile_pic=_first_text(payload, "uploaderProfilePic"),
            )
        except ValidationError as e:
            raise PayloadValidationError("ad", str(e)) from e

    @property
    def media_url(self) -> str:
        return self.video_url or self.image_url or ""

    @property
    def thumbnail_url(self) -> str:
        return self.image_url or self.video_url or ""

    @property
    def sponsor(self) -> Uploader:
        return Uploader(
            id=self.uploader_id or "unknown",
            name="Sponsored",
            profile_pic=self.uploader_profile_pic or "",
        )


FeedItem = Annotated[Union[Video, Ad], Field(discriminator="kind")]


class VideoPage(FeedModel):
    videos: List[Video] = Field(default_factory=list)
    has_more: bool = False
    total: int = 0
    page: int = 1
    etag: Optional[str] = None


class FeedPage(FeedModel):
    """One page of the integrated feed"""

    items: List[FeedItem] = Field(default_factory=list)
    has_more: bool = False
    total: int = 0
    page: int = 1
    ad_count: int = 0

    @property
    def videos(self) -> List[Video]:
        return [item for item in self.items if isinstance(item, Video)]


class UploadRequest(FeedModel):
    title: str = Field(min_length=1)
    description: str = ""
    link: str = ""
    video_type: str = "yog"
    category: str = ""
    tags: List[str] = Field(default_factory=list)

    def to_form_fields(self) -> Dict[str, str]:
        fields = {
            "videoName": self.title,
            "description": self.description,
            "link": self.link,
            "videoType": self.video_type,
            "category": self.category,
        }
        if self.tags:
            fields["tags"] = ",".join(self.tags)
        return fields


class UploadResult(FeedModel):
    video_id: str
    title: str = ""
    video_url: str = ""
    thumbnail_url: str = ""
    link: str = ""
    processing_status: str = "pending"

    @classmethod
    def from_api(cls, payload: Mapping[str, Any], base_url: str, title: str = "") -> "UploadResult":
        video = payload.get("video") if isinstance(payload, Mapping) else None
        if not isinstance(video, Mapping):
            raise PayloadValidationError("upload", "video data is missing")
        video_id = _first_text(video, "_id", "id")
        if not video_id:
            raise PayloadValidationError("upload", "missing video id")
        return cls(
            video_id=video_id,
            title=_first_text(video, "videoName") or title,
            video_url=absolutize(_first_text(video, "videoUrl", "hlsPlaylistUrl"), base_url),
            thumbnail_url=absolutize(_first_text(video, "thumbnailUrl"), base_url),
            link=_first_text(video, "link") or "",
            processing_status=_first_text(video, "processingStatus") or "pending",
        )


class ProcessingStatus(FeedModel):
    video_id: str
    status: str = ""
    progress: int = 0
    error: Optional[str] = None
    video_url: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_api(cls, video_id: str, payload: Mapping[str, Any]) -> "ProcessingStatus":
        video = payload.get("video") if isinstance(payload, Mapping) else None
        video = video if isinstance(video, Mapping) else {}
        return cls(
            video_id=video_id,
            status=(_first_text(video, "processingStatus") or "").lower(),
            progress=max(0, min(100, _as_count(video.get("processingProgress", 0)))),
            error=_first_text(video, "processingError"),
            video_url=_first_text(video, "videoUrl") or "",
            thumbnail_url=_first_text(video, "thumbnailUrl") or "",
        )

    @property
    def is_complete(self) -> bool:
        return self.status == "completed" or self.video_url.startswith(("http://", "https://"))

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"


class FeedbackSubmission(FeedModel):
    rating: int = Field(ge=1, le=5)
    comments: str = ""
    user_email: str = "anonymous@user.com"
    user_id: str = "anonymous"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "rating": self.rating,
            "comments": self.comments.strip(),
            "userEmail": self.user_email,
            "userId": self.user_id,
        }


class PaymentCapture(FeedModel):
    order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    ad_id: str = Field(min_length=1)

    def to_payload(self) -> Dict[str, str]:
        return {
            "orderId": self.order_id,
            "paymentId": self.payment_id,
            "signature": self.signature,
            "adId": self.ad_id,
        }


class PaymentResult(FeedModel):
    ad: Optional[Ad] = None
    invoice: Dict[str, Any] = Field(default_factory=dict)
    message: str = ""


def parse_many(items: Iterable[Any], parser, entity: str) -> List[Any]:
    """Parse a list of payloads, quarantining the ones that fail validation"""
    parsed = []
    for item in items:
        try:
            parsed.append(parser(item))
        except PayloadValidationError as e:
            logger.warning(f"Skipping malformed {entity}: {e.message}")
    return parsed
