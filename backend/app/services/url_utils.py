"""
Platform URL helpers for TikTok, Instagram and YouTube Shorts links.

Standardized forms:
- TikTok    → https://www.tiktok.com/@{username}/video/{video_id}
- Instagram → https://www.instagram.com/{p|reel}/{shortcode}
- YouTube   → https://www.youtube.com/shorts/{video_id}
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse

from app.models import SocialPlatform

TIKTOK_VIDEO_RE = re.compile(r"/@([^/]+)/video/(\d+)")
INSTAGRAM_POST_RE = re.compile(r"/(p|reel)/([A-Za-z0-9_-]+)")
INSTAGRAM_OWNER_RE = re.compile(r"/([^/]+)/(p|reel)/")
YOUTUBE_SHORTS_RE = re.compile(r"/shorts/([A-Za-z0-9_-]+)")
YOUTUBE_CHANNEL_RE = re.compile(r"/@([^/]+)")


class UnsupportedVideoUrl(ValueError):
    """URL is recognised but not an accepted video format (e.g. a regular YouTube video)."""


class AccountLike(Protocol):
    username: str | None
    profile_url: str | None


@dataclass(frozen=True)
class VideoIdentifiers:
    username: str | None = None
    video_id: str | None = None


def _strip_query(url: str) -> str:
    return url.split("?")[0].split("#")[0].strip()


def _parse(url: str):
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return parsed


def detect_platform(url: str | None) -> SocialPlatform | None:
    if not url:
        return None
    normalized = url.lower()
    if "tiktok.com" in normalized:
        return SocialPlatform.tiktok
    if "instagram.com" in normalized or "instagr.am" in normalized:
        return SocialPlatform.instagram
    if "youtube.com" in normalized or "youtu.be" in normalized:
        return SocialPlatform.youtube
    return None


def standardize_tiktok_url(url: str) -> str:
    parsed = _parse(url)
    if parsed is None:
        return _strip_query(url)
    match = TIKTOK_VIDEO_RE.search(parsed.path)
    if match:
        username, video_id = match.groups()
        return f"https://www.tiktok.com/@{username}/video/{video_id}"
    # vm.tiktok.com / tiktok.com/t/ short links keep their path
    path = parsed.path.rstrip("/")
    if path and "tiktok.com" in parsed.netloc.lower():
        return f"https://www.tiktok.com{path}"
    return _strip_query(url)


def standardize_instagram_url(url: str) -> str:
    parsed = _parse(url)
    if parsed is None:
        return _strip_query(url)
    match = INSTAGRAM_POST_RE.search(parsed.path)
    if not match:
        return _strip_query(url)
    kind, shortcode = match.groups()
    return f"https://www.instagram.com/{kind}/{shortcode}"


def standardize_youtube_url(url: str) -> str:
    """Only Shorts are accepted; ``/watch`` links raise UnsupportedVideoUrl."""
    parsed = _parse(url)
    if parsed is None:
        raise UnsupportedVideoUrl("Invalid YouTube Shorts URL")
    if parsed.netloc.lower() == "youtu.be":
        video_id = parsed.path.strip("/")
        if video_id:
            return f"https://www.youtube.com/shorts/{video_id}"
    match = YOUTUBE_SHORTS_RE.search(parsed.path)
    if match:
        return f"https://www.youtube.com/shorts/{match.group(1)}"
    if "/watch" in parsed.path:
        raise UnsupportedVideoUrl("Regular YouTube videos are not accepted. Only YouTube Shorts URLs are allowed.")
    raise UnsupportedVideoUrl("Invalid YouTube Shorts URL format")


def standardize_url(url: str) -> str:
    platform = detect_platform(url)
    if platform == SocialPlatform.tiktok:
        return standardize_tiktok_url(url)
    if platform == SocialPlatform.instagram:
        return standardize_instagram_url(url)
    if platform == SocialPlatform.youtube:
        return standardize_youtube_url(url)
    return _strip_query(url)


def is_valid_video_url(url: str) -> bool:
    if re.search(r"youtube\.com/watch", url):
        return False
    return bool(
        re.search(r"tiktok\.com/@[^/]+/video/\d+", url)
        or re.search(r"vm\.tiktok\.com/", url)
        or re.search(r"tiktok\.com/t/[A-Za-z0-9]+", url)
        or re.search(r"instagram\.com/(?:[^/]+/)?(p|reel)/[A-Za-z0-9_-]+", url)
        or re.search(r"youtube\.com/shorts/[A-Za-z0-9_-]+", url)
        or re.search(r"youtu\.be/[A-Za-z0-9_-]+", url)
    )


def extract_video_identifiers(url: str, platform: SocialPlatform | str) -> VideoIdentifiers:
    """Pull the creator handle and video id out of a platform URL path."""
    parsed = _parse(url)
    if parsed is None:
        return VideoIdentifiers()
    platform = SocialPlatform(platform)
    path = parsed.path

    if platform == SocialPlatform.tiktok:
        match = TIKTOK_VIDEO_RE.search(path)
        if match:
            return VideoIdentifiers(username=match.group(1), video_id=match.group(2))
        return VideoIdentifiers()

    if platform == SocialPlatform.instagram:
        post = INSTAGRAM_POST_RE.search(path)
        owner = INSTAGRAM_OWNER_RE.search(path)
        return VideoIdentifiers(
            username=owner.group(1) if owner else None,
            video_id=post.group(2) if post else None,
        )

    shorts = YOUTUBE_SHORTS_RE.search(path)
    channel = YOUTUBE_CHANNEL_RE.search(path)
    return VideoIdentifiers(
        username=channel.group(1) if channel else None,
        video_id=shorts.group(1) if shorts else None,
    )


def normalize_handle(value: str | None) -> str | None:
    if value is None:
        return None
    return value.replace("@", "").lower().strip() or None


def account_owns_url(
    account: AccountLike,
    url: str,
    platform: SocialPlatform | str,
    username_hint: str | None = None,
) -> bool:
    """Strict match: handle embedded in the URL path, or the account's profile URL as a prefix."""
    account_username = normalize_handle(account.username)
    hint = normalize_handle(username_hint)
    if hint is None:
        hint = normalize_handle(extract_video_identifiers(url, platform).username)
    if hint and account_username == hint:
        return True

    profile_url = (account.profile_url or "").lower().strip()
    return bool(profile_url) and profile_url in url.lower()


def account_matches_url(
    account: AccountLike,
    url: str,
    platform: SocialPlatform | str,
    username_hint: str | None = None,
) -> bool:
    """Looser match used when linking a freshly connected account to earlier uploads."""
    if account_owns_url(account, url, platform, username_hint):
        return True
    account_username = normalize_handle(account.username)
    return bool(account_username) and account_username in url.lower()
