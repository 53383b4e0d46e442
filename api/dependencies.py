from fastapi import Request

from core.cache import CacheManager
from core.config import FeedSettings
from services.ad_service import AdService
from services.feed_service import FeedService
from services.user_service import UserService
from services.video_service import VideoService


def get_settings(request: Request) -> FeedSettings:
    return request.app.state.settings


def get_cache_manager(request: Request) -> CacheManager:
    return request.app.state.cache


def get_video_service(request: Request) -> VideoService:
    return request.app.state.video_service


def get_ad_service(request: Request) -> AdService:
    return request.app.state.ad_service


def get_feed_service(request: Request) -> FeedService:
    return request.app.state.feed_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service
