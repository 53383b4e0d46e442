"""
HTTP transport for the feed backend.

`ApiClient` is the one place that talks to the network. It owns (or is handed)
an `aiohttp.ClientSession`, turns relative API paths into absolute URLs, adds
the bearer token from an explicitly injected token provider and runs every
attempt through `request_with_retry`. Responses are read fully and returned as
an immutable `HttpResponse`, so callers never hold an open connection.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

import aiohttp

from core.exceptions import (
    NetworkError,
    NotAuthenticatedError,
    PayloadValidationError,
    RequestFailedError,
    ServerError,
)
from core.logging_config import get_correlation_id, get_logger
from core.retry import is_success_status, request_with_retry

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]
FormFactory = Callable[[], aiohttp.FormData]

# Statuses that will not change on a second attempt
NON_RETRYABLE_STATUSES = (400, 401, 403, 404, 409, 413, 422)


async def _anonymous() -> Optional[str]:
    return None


@dataclass(frozen=True)
class HttpResponse:
    """A fully buffered backend response"""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return is_success_status(self.status)

    @property
    def etag(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "etag":
                return value
        return None

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to ``None``"""
        if not self.body.strip():
            return None
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise PayloadValidationError("response", f"invalid JSON ({e})") from e

    def error_message(self, default: str = "") -> str:
        """Extract the backend's ``{error}`` (or ``message``/``details``) text"""
        try:
            payload = self.json()
        except PayloadValidationError:
            return default or self.text()[:200]
        if isinstance(payload, Mapping):
            for key in ("error", "message", "details"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return default

    def raise_for_status(self, operation: str) -> None:
        """Raise `ServerError` for any non-2xx status"""
        if not self.ok:
            raise ServerError(operation, self.status, self.error_message())


class ApiClient:
    """Async client for the feed backend REST API"""

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
        max_attempts: int = 2,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider or _anonymous
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_token(self) -> Optional[str]:
        return await self.token_provider()

    async def require_token(self, action: str = "perform this action") -> str:
        """Return the session token or raise `NotAuthenticatedError`"""
        token = await self.get_token()
        if not token:
            raise NotAuthenticatedError(action)
        return token

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        form: Optional[FormFactory] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        give_up_on: Iterable[int] = NON_RETRYABLE_STATUSES,
        action: Optional[str] = None,
    ) -> HttpResponse:
        """Send one logical request, retrying transient failures.

        ``form`` is a factory rather than a ready `aiohttp.FormData` because a
        form body can only be consumed once and each retry needs a new one.
        A 401 response raises `NotAuthenticatedError` and a status that is still
        failing after the last attempt raises `ServerError`; every other status
        is returned to the caller.
        """
        url = self.url(path)
        operation = f"{method} {path}"
        headers = self._headers(token, json_body is not None)

        async def attempt() -> HttpResponse:
            session = self._get_session()
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=form() if form is not None else None,
                headers=headers,
            ) as response:
                body = await response.read()
                return HttpResponse(response.status, dict(response.headers), body)

        logger.debug(f"Sending {operation}", extra={"url": url, "params": params})
        try:
            response = await request_with_retry(
                attempt,
                max_attempts=max_attempts or self.max_attempts,
                base_delay=self.retry_base_delay,
                timeout=timeout or self.timeout,
                give_up_on=give_up_on,
                sleep=self._sleep,
                operation=operation,
            )
        except RequestFailedError as e:
            if isinstance(e, NetworkError) or e.last_status is None:
                raise
            reason = e.last_result.error_message() if e.last_result is not None else ""
            raise ServerError(operation, e.last_status, reason) from e

        if response.status == 401:
            logger.info(f"{operation} rejected as unauthenticated")
            raise NotAuthenticatedError(action or "perform this action")
        return response

    async def get(self, path: str, **kwargs) -> HttpResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> HttpResponse:
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> HttpResponse:
        return await self.request("DELETE", path, **kwargs)

    async def close(self):
        """Close the session if this client created it"""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("HTTP session closed")
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    def _headers(self, token: Optional[str], has_json: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if has_json:
            headers["Content-Type"] = "application/json"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        corr_id = get_correlation_id()
        if corr_id:
            headers["X-Correlation-ID"] = corr_id
        return headers
