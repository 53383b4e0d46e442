import pytest
from unittest.mock import AsyncMock

from core.exceptions import NotAuthenticatedError, NotFoundError, PayloadValidationError, ServerError
from core.models import FeedbackSubmission
from providers.http_client import ApiClient
from services.user_service import UserService


@pytest.fixture
def user_service(api_client):
    return UserService(api_client)


class TestFollow:
    """Test follow and unfollow."""

    @pytest.mark.asyncio
    async def test_follow(self, user_service, fake_session, make_response):
        fake_session.queue(make_response(200, {"message": "Followed"}))

        assert await user_service.follow("u2") is True

        call = fake_session.calls[0]
        assert call["url"] == "https://api.example.com/api/users/follow"
        assert call["json"] == {"userIdToFollow": "u2"}
        assert call["headers"]["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_unfollow(self, user_service, fake_session, make_response):
        fake_session.queue(make_response(200, {}))

        assert await user_service.unfollow("u2") is True
        assert fake_session.calls[0]["json"] == {"userIdToUnfollow": "u2"}

    @pytest.mark.asyncio
    async def test_follow_unknown_user(self, user_service, fake_session, make_response):
        fake_session.queue(make_response(404))
        with pytest.raises(NotFoundError):
            await user_service.follow("ghost")

    @pytest.mark.asyncio
    async def test_follow_requires_session(self, fake_session):
        client = ApiClient("https://api.example.com", token_provider=AsyncMock(return_value=""), session=fake_session)

        with pytest.raises(NotAuthenticatedError) as exc_info:
            await UserService(client).follow("u2")

        assert exc_info.value.message == "Please sign in to follow users"


class TestFeedback:
    """Test feedback submission."""

    @pytest.mark.asyncio
    async def test_submit_feedback(self, user_service, fake_session, make_response):
        fake_session.queue(make_response(201, {"message": "Thanks"}))

        await user_service.submit_feedback(FeedbackSubmission(rating=4, comments="Smooth feed", user_id="u1"))

        call = fake_session.calls[0]
        assert call["url"].endswith("/api/feedback/submit")
        assert call["json"]["rating"] == 4
        assert call["json"]["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_submit_feedback_requires_comments(self, user_service, fake_session):
        with pytest.raises(PayloadValidationError):
            await user_service.submit_feedback(FeedbackSubmission(rating=3, comments="  "))
        assert fake_session.calls == []

    @pytest.mark.asyncio
    async def test_submit_feedback_failure(self, user_service, fake_session, make_response):
        fake_session.queue(make_response(400, {"error": "Rating is required"}))
        with pytest.raises(ServerError):
            await user_service.submit_feedback(FeedbackSubmission(rating=3, comments="ok"))
