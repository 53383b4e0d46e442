"""
Custom Exception Classes for the Feed Client.

This module defines the error taxonomy used throughout the feed data access
layer. Every failure raised by the HTTP transport, the retry wrapper or the
services is a `FeedClientError`, so callers at the UI or gateway boundary can
catch one base class and turn it into a user-facing message.

Key Components:
- `FeedClientError`: The base exception class. It carries a message, a stable
  `error_code`, an HTTP-ish `status_code` and an optional `details` dict.
- Specific Exception Classes: `NotAuthenticatedError`, `NotFoundError`,
  `ServerError`, `RequestTimeoutError`, `NetworkError` and friends, one per
  failure kind observed against the backend.
- `to_http_exception`: Maps a `FeedClientError` to FastAPI's `HTTPException`
  for the feed gateway.

Architectural Design:
- Hierarchy of Exceptions: `NetworkError` is a `RequestFailedError`, so code
  that only cares that "the request failed" can catch the parent, while code
  that wants to distinguish transport failures can catch the child.
- Rich Error Information: Upstream status codes and backend `{error}` messages
  travel in `details`, which keeps logs useful without leaking raw payloads.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class FeedClientError(Exception):
    """Base exception class for the feed client"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "FEED_CLIENT_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotAuthenticatedError(FeedClientError):
    """Raised when an operation needs a session token and none is available"""

    status_code = 401

    def __init__(self, action: str = "perform this action"):
        super().__init__(
            f"Please sign in to {action}",
            "NOT_AUTHENTICATED",
            {"action": action},
        )


class PermissionDeniedError(FeedClientError):
    """Raised when the backend refuses an operation for the current user"""

    status_code = 403

    def __init__(self, reason: str):
        super().__init__(reason, "PERMISSION_DENIED", {"reason": reason})


class NotFoundError(FeedClientError):
    """Raised when a requested entity does not exist"""

    status_code = 404

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            f"{entity} not found: {identifier}",
            "NOT_FOUND",
            {"entity": entity, "id": identifier},
        )


class PayloadValidationError(FeedClientError):
    """Raised when a backend payload cannot be turned into a typed record"""

    status_code = 422

    def __init__(self, entity: str, reason: str):
        super().__init__(
            f"Malformed {entity} payload: {reason}",
            "PAYLOAD_VALIDATION_ERROR",
            {"entity": entity, "reason": reason},
        )


class ServerError(FeedClientError):
    """Raised for non-2xx responses that are not a 404"""

    status_code = 502

    def __init__(self, operation: str, upstream_status: int, reason: str = ""):
        message = f"{operation} failed with status {upstream_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            "SERVER_ERROR",
            {
                "operation": operation,
                "upstream_status": upstream_status,
                "reason": reason,
            },
        )
        self.upstream_status = upstream_status


class RequestFailedError(FeedClientError):
    """Raised when a request still fails after every retry attempt"""

    status_code = 502

    def __init__(
        self,
        attempts: int,
        last_status: Optional[int] = None,
        reason: str = "",
        error_code: str = "REQUEST_FAILED",
        last_result: Any = None,
    ):
        message = f"Request failed after {attempts} attempts"
        if last_status is not None:
            message = f"{message} (last status {last_status})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            error_code,
            {"attempts": attempts, "last_status": last_status, "reason": reason},
        )
        self.attempts = attempts
        self.last_status = last_status
        self.last_result = last_result


class NetworkError(RequestFailedError):
    """Raised on transport-level failures such as an unreachable host"""

    status_code = 503

    def __init__(self, attempts: int, reason: str):
        super().__init__(attempts, None, reason, error_code="NETWORK_ERROR")


class RequestTimeoutError(FeedClientError):
    """Raised when a request or a wait loop exceeds its deadline"""

    status_code = 504

    def __init__(self, timeout: float, attempts: int = 1):
        super().__init__(
            "Request timed out. Please try again.",
            "REQUEST_TIMEOUT",
            {"timeout": timeout, "attempts": attempts},
        )
        self.timeout = timeout
        self.attempts = attempts


class UploadProcessingError(FeedClientError):
    """Raised when the backend reports that a video failed processing"""

    status_code = 500

    def __init__(self, video_id: str, reason: str):
        super().__init__(
            f"Processing failed for video {video_id}: {reason}",
            "UPLOAD_PROCESSING_ERROR",
            {"video_id": video_id, "reason": reason},
        )


def to_http_exception(exc: FeedClientError) -> HTTPException:
    """Convert FeedClientError to FastAPI HTTPException"""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
