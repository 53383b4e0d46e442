"""Follow relationships and app feedback."""

import logging

from core.exceptions import NotFoundError, PayloadValidationError
from core.models import FeedbackSubmission
from providers.http_client import ApiClient

logger = logging.getLogger(__name__)


class UserService:
    """Social actions for the signed-in user"""

    def __init__(self, client: ApiClient):
        self.client = client

    async def follow(self, user_id: str) -> bool:
        return await self._set_following(user_id, follow=True)

    async def unfollow(self, user_id: str) -> bool:
        return await self._set_following(user_id, follow=False)

    async def submit_feedback(self, submission: FeedbackSubmission) -> None:
        """Send a rating and comment about the app"""
        if not submission.comments.strip():
            raise PayloadValidationError("feedback", "comments are required")
        response = await self.client.post(
            "/api/feedback/submit",
            json_body=submission.to_payload(),
            token=await self.client.get_token(),
            max_attempts=1,
        )
        response.raise_for_status("Submit feedback")
        logger.info(f"Feedback submitted with rating {submission.rating}")

    async def _set_following(self, user_id: str, follow: bool) -> bool:
        verb = "follow" if follow else "unfollow"
        token = await self.client.require_token(f"{verb} users")
        field = "userIdToFollow" if follow else "userIdToUnfollow"
        response = await self.client.post(
            f"/api/users/{verb}",
            json_body={field: user_id},
            token=token,
            action=f"{verb} users",
        )
        if response.status == 404:
            raise NotFoundError("User", user_id)
        response.raise_for_status(f"{verb.capitalize()} user")
        logger.info(f"{verb.capitalize()}ed user {user_id}")
        return True
