"""
Video fingerprint: stable identity key for a submitted video URL.

md5 of the lower-cased standardized URL, so share links with tracking
parameters collapse onto the same key.
"""
from __future__ import annotations

import hashlib
from urllib.parse import parse_qs, urlsplit

from app.services.url_utils import UnsupportedVideoUrl, standardize_url


def canonical_video_url(url: str) -> str:
    """Standardized URL, or a query-free fallback when it cannot be standardized.

    Regular YouTube videos keep their ``v`` id: ``https://www.youtube.com/watch?v={id}``.
    """
    raw = (url or "").strip()
    try:
        return standardize_url(raw)
    except UnsupportedVideoUrl:
        try:
            video_id = parse_qs(urlsplit(raw).query).get("v", [""])[0].strip()
        except ValueError:
            video_id = ""
        if video_id:
            return f"https://www.youtube.com/watch?v={video_id}"
        return raw.split("?")[0].split("#")[0]


def fingerprint(url: str) -> str:
    """Compute the hex fingerprint of a video URL. Never raises."""
    canonical = canonical_video_url(url).lower()
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()
