"""
Vayu Feed Gateway - Main Application Entry Point.

This module initializes and configures the FastAPI application that serves the
integrated video feed. It sets up logging, middleware and routes, and wires the
feed data access layer at startup.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for correlation, error handling and request timing.
- Build the settings, HTTP client, cache and services once per process and
  store them on `app.state`.
- Close the backend HTTP session on shutdown.

Architecture:
The gateway is a thin layer. Routers resolve services from `app.state` through
`api.dependencies`, the services own the feed semantics, and `ApiClient` is the
only component that talks to the backend.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.endpoints import router
from api.health_router import SERVICE_VERSION, health_router, monitoring_router
from core.cache import CacheManager, MemoryCacheBackend
from core.config import FeedSettings
from core.logging_config import get_logger, setup_logging
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
)
from providers.http_client import ApiClient
from services.ad_service import AdService
from services.feed_service import FeedService
from services.user_service import UserService
from services.video_service import VideoService


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")

    settings = FeedSettings.from_env()
    client = ApiClient(
        settings.base_url,
        timeout=settings.request_timeout,
        max_attempts=settings.max_attempts,
        retry_base_delay=settings.retry_base_delay,
    )
    cache = CacheManager(MemoryCacheBackend())
    video_service = VideoService(client, cache, settings)
    ad_service = AdService(client, cache)

    app.state.settings = settings
    app.state.client = client
    app.state.cache = cache
    app.state.video_service = video_service
    app.state.ad_service = ad_service
    app.state.feed_service = FeedService(video_service, ad_service, settings)
    app.state.user_service = UserService(client)
    logger.info(f"Feed gateway started against {settings.base_url}")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down feed gateway")
    await client.close()
    logger.info("Cleanup completed")


app = FastAPI(
    title="Vayu Feed Gateway",
    description="Paginated video feed with interleaved ads",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(CorrelationMiddleware)

app.include_router(health_router)
app.include_router(monitoring_router)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8002,
        reload=True,
        log_level="info",
    )
