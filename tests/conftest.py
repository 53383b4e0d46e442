import json
import os
import sys
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from core.cache import CacheManager, MemoryCacheBackend
from core.config import FeedSettings
from providers.http_client import ApiClient

BASE_URL = "https://api.example.com"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class AsyncContextManager:
    """Helper class for testing async context managers."""

    def __init__(self, return_value=None):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class FakeResponse:
    """Stand-in for an aiohttp client response."""

    def __init__(self, status: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None, body: Optional[bytes] = None):
        self.status = status
        self.headers = headers or {}
        if body is not None:
            self._body = body
        elif payload is None:
            self._body = b""
        else:
            self._body = json.dumps(payload).encode()

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    """Stand-in for `aiohttp.ClientSession` serving queued responses.

    Each queued item is either a `FakeResponse` or an exception instance that
    is raised when the request is made.
    """

    def __init__(self, *responses):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return AsyncContextManager(item)

    async def close(self):
        self.closed = True


def video_payload(video_id: str = "v1", **overrides) -> Dict[str, Any]:
    payload = {
        "_id": video_id,
        "videoName": f"Video {video_id}",
        "description": "A test video",
        "videoUrl": f"/uploads/{video_id}.mp4",
        "thumbnailUrl": f"/thumbs/{video_id}.jpg",
        "likes": 3,
        "views": "120",
        "shares": 1,
        "likedBy": ["u1", "u2", "u3"],
        "uploader": {"googleId": "g-42", "name": "Asha", "profilePic": "https://cdn.example.com/a.png"},
        "uploadedAt": "2024-05-01T10:00:00.000Z",
        "videoType": "yog",
        "comments": [],
    }
    payload.update(overrides)
    return payload


def ad_payload(ad_id: str = "a1", **overrides) -> Dict[str, Any]:
    payload = {
        "_id": ad_id,
        "title": f"Ad {ad_id}",
        "description": "Buy now",
        "imageUrl": f"/ads/{ad_id}.png",
        "link": "https://shop.example.com",
        "adType": "banner",
        "status": "active",
        "uploaderId": "sponsor-1",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("FEED_API_BASE_URL", BASE_URL)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Awaitable sleep that records delays instead of waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def token_provider() -> AsyncMock:
    return AsyncMock(return_value="test-token")


@pytest.fixture
def api_client(fake_session, token_provider, fake_sleep) -> ApiClient:
    return ApiClient(
        BASE_URL,
        token_provider=token_provider,
        session=fake_session,
        timeout=5.0,
        max_attempts=2,
        retry_base_delay=1.0,
        sleep=fake_sleep,
    )


@pytest.fixture
def cache_manager(fake_clock) -> CacheManager:
    """Create a cache manager driven by the fake clock."""
    return CacheManager(MemoryCacheBackend(), clock=fake_clock)


@pytest.fixture
def settings() -> FeedSettings:
    return FeedSettings(base_url=BASE_URL, page_size=10, ad_stride=3, invalidate_pages=3)


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger


@pytest.fixture
def make_video():
    """Factory for backend video payloads."""
    return video_payload


@pytest.fixture
def make_ad():
    """Factory for backend ad payloads."""
    return ad_payload


@pytest.fixture
def make_response():
    """Factory for fake aiohttp responses."""
    return FakeResponse
