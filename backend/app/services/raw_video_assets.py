"""
Raw video assets and account linking.

Covers the parts of the ownership lifecycle around the resolvers:
recording uploaded MP4 metadata, keeping the per-fingerprint claim row up
to date, linking a newly connected account to earlier uploads, and the
fan-out that runs once an account becomes VERIFIED.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ClaimStatus, OwnershipState, RawVideoAsset, SocialPlatform, VerificationStatus
from app.services.contest_ownership import ConflictResolution, resolve_ownership_conflicts
from app.services.ownership_store import AccountRecord, OwnershipStore
from app.services.url_utils import account_matches_url, extract_video_identifiers
from app.services.video_fingerprint import fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountOwnership:
    status: Literal["verified", "needs_verification", "missing"]
    account: AccountRecord | None = None


async def resolve_account_ownership(
    store: OwnershipStore,
    user_id: str,
    platform: SocialPlatform | str,
    video_url: str,
    *,
    require_verified: bool = True,
) -> AccountOwnership:
    """Find the caller's connected account that a video URL belongs to.

    With require_verified only VERIFIED accounts are considered.
    """
    platform = SocialPlatform(platform)
    accounts = await store.list_accounts(user_id, platform.value)
    if not accounts:
        return AccountOwnership(status="missing")

    if require_verified:
        eligible = [a for a in accounts if a.verification_status == VerificationStatus.verified.value]
    else:
        eligible = accounts
    if not eligible:
        return AccountOwnership(status="needs_verification")

    username = extract_video_identifiers(video_url, platform).username
    matched = next((a for a in eligible if account_matches_url(a, video_url, platform, username)), None)
    if matched is None:
        return AccountOwnership(status="missing" if require_verified else "needs_verification")
    if matched.verification_status == VerificationStatus.verified.value:
        return AccountOwnership(status="verified", account=matched)
    return AccountOwnership(status="needs_verification", account=matched)


def create_raw_video_asset(
    session: AsyncSession,
    *,
    user_id: str,
    platform: SocialPlatform | str,
    video_url: str,
    ownership_status: OwnershipState,
    bucket: str,
    mp4_path: str | None = None,
    mp4_size_bytes: int | None = None,
    submission_type: str = "contest",
    owner_social_account_id: int | None = None,
    ownership_reason: str | None = None,
) -> RawVideoAsset:
    """Stage a raw_video_assets row on the session; the caller flushes/commits."""
    asset = RawVideoAsset(
        user_id=user_id,
        submission_type=submission_type,
        video_url=video_url,
        video_fingerprint=fingerprint(video_url),
        platform=SocialPlatform(platform).value,
        mp4_bucket=bucket,
        mp4_path=mp4_path,
        mp4_size_bytes=mp4_size_bytes,
        ownership_status=ownership_status.value,
        ownership_reason=ownership_reason,
        owner_social_account_id=owner_social_account_id,
        ownership_verified_at=datetime.now(timezone.utc) if ownership_status == OwnershipState.verified else None,
    )
    session.add(asset)
    return asset


async def upsert_ownership_claim(
    store: OwnershipStore,
    *,
    video_url: str,
    platform: SocialPlatform | str,
    user_id: str,
    status: ClaimStatus,
    social_account_id: int | None = None,
    asset_id: int | None = None,
) -> bool:
    """Move the claim row for a video forward.

    Returns False only when a ``claimed`` request loses to another user's claim.
    """
    video_fingerprint = fingerprint(video_url)
    platform_value = SocialPlatform(platform).value
    if status == ClaimStatus.claimed:
        return await store.claim_video(video_fingerprint, platform_value, user_id, social_account_id, asset_id)
    await store.record_claim_status(video_fingerprint, platform_value, status)
    return True


async def associate_account_with_pending_assets(store: OwnershipStore, account: AccountRecord) -> dict:
    """Link the owner's earlier uploads and submissions that match the account."""
    platform = SocialPlatform(account.platform)

    assets = await store.list_unlinked_assets(account.user_id, platform.value)
    asset_ids = [a.id for a in assets if account_matches_url(account, a.video_url, platform)]
    await store.link_assets(asset_ids, account.id, account.user_id)

    submissions = await store.list_unlinked_submissions(account.user_id, platform.value)
    submission_ids = [s.id for s in submissions if account_matches_url(account, s.video_url, platform)]
    await store.link_submissions(submission_ids, account.id)

    if asset_ids or submission_ids:
        logger.info(
            "[ownership] Linked account %s to assets=%s submissions=%s", account.id, asset_ids, submission_ids
        )
    return {"asset_ids": asset_ids, "submission_ids": submission_ids}


async def finalize_ownership_for_social_account(
    store: OwnershipStore, account: AccountRecord, *, url_limit: int = 100
) -> list[ConflictResolution]:
    """Run conflict resolution for every open video linked to a VERIFIED account.

    One URL failing does not stop the others.
    """
    if account.verification_status != VerificationStatus.verified.value:
        return []

    urls = await store.list_open_video_urls(account.id, url_limit)
    logger.info(
        "[ownership] Resolving ownership conflicts for verified account %s (user %s): %s videos",
        account.id, account.user_id, len(urls),
    )
    results: list[ConflictResolution] = []
    for video_url in urls:
        try:
            results.append(await resolve_ownership_conflicts(store, video_url, account.id, account.user_id))
        except Exception:
            logger.exception("[ownership] Error resolving ownership conflict for %s", video_url)
    return results


async def handle_account_verified(store: OwnershipStore, account_id: int, *, url_limit: int = 100) -> dict:
    """Entry point for a verification event: link, then settle every affected video."""
    account = await store.get_account(account_id)
    if account is None:
        logger.error("[ownership] Verification event for unknown account %s", account_id)
        return {"account_id": account_id, "error": "not_found"}
    if account.verification_status != VerificationStatus.verified.value:
        return {"account_id": account_id, "skipped": account.verification_status}

    linked = await associate_account_with_pending_assets(store, account)
    resolutions = await finalize_ownership_for_social_account(store, account, url_limit=url_limit)
    return {
        "account_id": account_id,
        "linked": linked,
        "resolutions": [r.as_dict() for r in resolutions],
    }
