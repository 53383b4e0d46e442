"""
Ad Retrieval, Tracking and Payment Capture.

`AdService` fetches the active ads that the feed integrator interleaves with
videos, reports impressions and clicks, and captures a completed payment for
a new ad campaign against the app backend.

Tracking calls are fire-and-forget: without a session they are skipped, and a
failed call is logged without reaching the caller. Payment capture is the
opposite; every failure propagates so the checkout screen can react.
"""

import logging
from typing import Any, Dict, List, Optional

from core.cache import CacheManager, cache_key
from core.exceptions import FeedClientError, PayloadValidationError
from core.models import Ad, PaymentCapture, PaymentResult, parse_many
from providers.http_client import ApiClient

logger = logging.getLogger(__name__)

ACTIVE_ADS_KEY = cache_key("ads", "active")


class AdService:
    """Service for active ads and ad engagement"""

    def __init__(self, client: ApiClient, cache: CacheManager, platform: str = "mobile"):
        self.client = client
        self.cache = cache
        self.platform = platform

    async def list_active_ads(self, force_refresh: bool = False) -> List[Ad]:
        """Fetch the currently active ads, cached under the ``ads`` type"""

        async def fetch() -> List[Ad]:
            response = await self.client.get("/api/ads/active", token=await self.client.get_token())
            response.raise_for_status("List active ads")
            payload = response.json()
            if isinstance(payload, dict):
                payload = payload.get("ads", [])
            if not isinstance(payload, list):
                raise PayloadValidationError("ads", "expected a list of ads")
            ads = parse_many(payload, lambda item: Ad.from_api(item, self.client.base_url), "ad")
            logger.debug(f"Fetched {len(ads)} active ads")
            return ads

        return await self.cache.get(
            ACTIVE_ADS_KEY, fetch, cache_type="ads", force_refresh=force_refresh
        )

    async def track_impression(self, ad_id: str, user_id: Optional[str] = None, location: str = "feed") -> bool:
        return await self._track("track-impression", ad_id, user_id, location)

    async def track_click(self, ad_id: str, user_id: Optional[str] = None, location: str = "feed") -> bool:
        return await self._track("track-click", ad_id, user_id, location)

    async def process_payment(self, capture: PaymentCapture) -> PaymentResult:
        """Verify a gateway payment with the backend and activate the ad"""
        token = await self.client.require_token("pay for ads")
        response = await self.client.post(
            "/api/ads/process-payment",
            json_body=capture.to_payload(),
            token=token,
            max_attempts=1,
            action="pay for ads",
        )
        response.raise_for_status("Process ad payment")

        payload = response.json()
        if not isinstance(payload, dict):
            raise PayloadValidationError("payment", "expected an object")
        ad_payload = payload.get("ad")
        invoice = payload.get("invoice")
        result = PaymentResult(
            ad=Ad.from_api(ad_payload, self.client.base_url) if isinstance(ad_payload, dict) else None,
            invoice=invoice if isinstance(invoice, dict) else {},
            message=str(payload.get("message") or ""),
        )
        logger.info(f"Payment {capture.payment_id} captured for ad {capture.ad_id}")
        await self.cache.invalidate(ACTIVE_ADS_KEY)
        return result

    async def _track(self, event: str, ad_id: str, user_id: Optional[str], location: str) -> bool:
        token = await self.client.get_token()
        if not token:
            logger.debug(f"Skipping {event} for ad {ad_id}: no session")
            return False

        body: Dict[str, Any] = {"platform": self.platform, "location": location}
        if user_id:
            body["userId"] = user_id
        try:
            response = await self.client.post(
                f"/api/ads/{event}/{ad_id}", json_body=body, token=token, max_attempts=1
            )
        except FeedClientError as e:
            logger.warning(f"Ad {event} for {ad_id} failed: {e.message}")
            return False
        if not response.ok:
            logger.warning(f"Ad {event} for {ad_id} returned status {response.status}")
        return response.ok
