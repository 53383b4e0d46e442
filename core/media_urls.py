"""Media URL normalization for backend payloads."""

import re
from typing import Any, Mapping, Optional

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

# Streaming fields in order of preference, raw file last
STREAM_URL_FIELDS = ("hlsPlaylistUrl", "hlsMasterPlaylistUrl", "videoUrl")


def has_scheme(url: str) -> bool:
    return bool(_SCHEME_RE.match(url))


def absolutize(url: Optional[str], base_url: str) -> str:
    """Prefix ``base_url`` to a relative media path.

    Absolute URLs come back unchanged, protocol-relative ones get ``https:``
    and a leading slash on the relative path is dropped so the join never
    produces ``//``.
    """
    if not url:
        return ""
    url = url.strip()
    if not url or has_scheme(url):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def _non_empty(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def select_stream_url(payload: Mapping[str, Any], base_url: str) -> str:
    """Pick the playback URL for a video payload.

    A non-empty HLS playlist URL wins over the master playlist, which wins
    over the progressive ``videoUrl``. The winner is made absolute.
    """
    for field in STREAM_URL_FIELDS:
        candidate = _non_empty(payload.get(field))
        if candidate:
            return absolutize(candidate, base_url)
    return ""
