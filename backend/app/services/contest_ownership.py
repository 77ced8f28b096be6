"""
Contest ownership: decides who owns a submitted video and settles
competing claims once a social account gets verified.

check_video_ownership (priority order, first match wins):
1. verified asset / claimed claim row owned by the caller → verified
2. verified asset / claimed claim row owned by someone else → failed (read-only)
3. caller has a VERIFIED account on the platform matching the URL → verified
4. other users have pending/contested submissions of the URL → contested
5. otherwise → pending

Database read errors never propagate: the check degrades to pending so a
submission is never blocked by an outage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Union

from app.models import ClaimStatus, SocialPlatform
from app.services.ownership_store import OwnershipStore, SubmissionRecord
from app.services.url_utils import account_owns_url, extract_video_identifiers
from app.services.video_fingerprint import fingerprint

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "Unable to verify ownership status. Please connect your social account."
PENDING_REASON = "Please connect your social account to verify ownership of this video."
CONTESTED_REASON = "Multiple users have submitted this video. Connect your social account to verify ownership."
ASSET_WON_REASON = "Ownership verified via connected account"


@dataclass(frozen=True)
class OwnershipVerified:
    social_account_id: int | None
    reason: str
    status: Literal["verified"] = "verified"

    def as_dict(self) -> dict:
        return {"status": self.status, "social_account_id": self.social_account_id, "reason": self.reason}


@dataclass(frozen=True)
class OwnershipPending:
    reason: str
    status: Literal["pending"] = "pending"

    def as_dict(self) -> dict:
        return {"status": self.status, "reason": self.reason}


@dataclass(frozen=True)
class OwnershipFailed:
    reason: str
    claimed_by: str | None = None
    claimed_by_username: str | None = None
    status: Literal["failed"] = "failed"

    def as_dict(self) -> dict:
        return {
            "status": self.status,
            "reason": self.reason,
            "claimed_by": self.claimed_by,
            "claimed_by_username": self.claimed_by_username,
        }


@dataclass(frozen=True)
class OwnershipContested:
    reason: str
    status: Literal["contested"] = "contested"

    def as_dict(self) -> dict:
        return {"status": self.status, "reason": self.reason}


OwnershipStatus = Union[OwnershipVerified, OwnershipPending, OwnershipFailed, OwnershipContested]


@dataclass
class ConflictResolution:
    video_fingerprint: str
    winning_submission_ids: list[int] = field(default_factory=list)
    losing_submission_ids: list[int] = field(default_factory=list)
    winning_asset_ids: list[int] = field(default_factory=list)
    losing_asset_ids: list[int] = field(default_factory=list)
    claimed: bool = False
    errors: int = 0

    def as_dict(self) -> dict:
        return {
            "video_fingerprint": self.video_fingerprint,
            "winning_submission_ids": self.winning_submission_ids,
            "losing_submission_ids": self.losing_submission_ids,
            "winning_asset_ids": self.winning_asset_ids,
            "losing_asset_ids": self.losing_asset_ids,
            "claimed": self.claimed,
            "errors": self.errors,
        }


def _verified(account_id: int | None, username: str | None) -> OwnershipVerified:
    return OwnershipVerified(
        social_account_id=account_id,
        reason=f"Ownership verified via connected account @{username or 'your account'}",
    )


def _failed(owner_user_id: str | None, username: str | None) -> OwnershipFailed:
    return OwnershipFailed(
        reason=(
            f"This video is already claimed by @{username or 'another user'}. "
            "Only the original creator can submit this video."
        ),
        claimed_by=owner_user_id,
        claimed_by_username=username,
    )


async def check_video_ownership(
    store: OwnershipStore,
    video_url: str,
    user_id: str,
    platform: SocialPlatform | str,
    *,
    pending_scan_limit: int | None = 10,
) -> OwnershipStatus:
    """Decide the caller's ownership status for a (standardized) video URL."""
    platform = SocialPlatform(platform)
    video_fingerprint = fingerprint(video_url)

    # 1-2. existing verified owner
    try:
        asset = await store.find_verified_asset(video_fingerprint)
        claim = None if asset else await store.find_claim(video_fingerprint)
    except Exception:
        logger.exception("[ownership] Error checking existing claims for %s", video_fingerprint)
        return OwnershipPending(reason=UNAVAILABLE_REASON)

    if asset is not None:
        owner_user_id = asset.owner_user_id or asset.user_id
        if user_id in (asset.user_id, asset.owner_user_id):
            return _verified(asset.owner_social_account_id, asset.owner_username)
        return _failed(owner_user_id, asset.owner_username)

    if claim is not None and claim.status == ClaimStatus.claimed.value:
        if claim.current_owner_user_id == user_id:
            return _verified(claim.current_owner_social_account_id, claim.current_owner_username)
        return _failed(claim.current_owner_user_id, claim.current_owner_username)

    # 3. caller's own verified account
    try:
        accounts = await store.list_verified_accounts(user_id, platform.value)
    except Exception:
        logger.exception("[ownership] Error loading verified accounts for user %s", user_id)
        accounts = []

    if accounts:
        username = extract_video_identifiers(video_url, platform).username
        for account in accounts:
            if account_owns_url(account, video_url, platform, username_hint=username):
                return _verified(account.id, account.username)

    # 4. competing claimants
    try:
        submissions = await store.list_open_submissions(video_url, limit=pending_scan_limit)
    except Exception:
        logger.exception("[ownership] Error checking pending submissions for %s", video_url)
        submissions = []

    if any(s.user_id != user_id for s in submissions):
        return OwnershipContested(reason=CONTESTED_REASON)

    return OwnershipPending(reason=PENDING_REASON)


def _partition(rows, verified_user_id: str | None) -> tuple[list, list]:
    winners, losers = [], []
    for row in rows:
        (winners if verified_user_id is not None and row.user_id == verified_user_id else losers).append(row)
    return winners, losers


async def resolve_ownership_conflicts(
    store: OwnershipStore,
    video_url: str,
    verified_account_id: int,
    verified_user_id: str,
) -> ConflictResolution:
    """Settle every open claim on a video in favour of a freshly verified account.

    Rows of verified_user_id win, every other pending/contested row loses and
    its submission is disqualified. Rows are updated one at a time; a failed
    update is logged and the rest still run. Re-running converges to the same
    assignment because resolved rows are no longer pending/contested.
    """
    video_fingerprint = fingerprint(video_url)
    resolution = ConflictResolution(video_fingerprint=video_fingerprint)
    logger.info(
        "[ownership] Resolving conflicts url=%s account=%s user=%s fingerprint=%s",
        video_url, verified_account_id, verified_user_id, video_fingerprint,
    )

    try:
        account = await store.get_account(verified_account_id)
    except Exception:
        logger.exception("[ownership] Error loading verified account %s", verified_account_id)
        resolution.errors += 1
        return resolution
    if account is None:
        logger.error("[ownership] Verified account not found: %s", verified_account_id)
        return resolution

    try:
        submissions: list[SubmissionRecord] = await store.list_open_submissions(video_url)
    except Exception:
        logger.exception("[ownership] Error finding submissions for %s", video_url)
        resolution.errors += 1
        submissions = []
    try:
        assets = await store.list_open_assets(video_fingerprint)
    except Exception:
        logger.exception("[ownership] Error finding raw assets for %s", video_fingerprint)
        resolution.errors += 1
        assets = []

    winner_user_id: str | None = verified_user_id
    winner_name = account.username
    has_winner_rows = any(r.user_id == verified_user_id for r in [*submissions, *assets])
    if has_winner_rows:
        try:
            resolution.claimed = await store.claim_video(
                video_fingerprint, account.platform, verified_user_id, account.id
            )
        except Exception:
            # claim state unknown: leave every row open for the next run
            logger.exception("[ownership] Error claiming %s for user %s", video_fingerprint, verified_user_id)
            resolution.errors += 1
            return resolution

    if not resolution.claimed:
        try:
            holder = await store.find_claim(video_fingerprint)
        except Exception:
            logger.exception("[ownership] Error loading claim holder for %s", video_fingerprint)
            holder = None
        held_by_other = (
            holder is not None
            and holder.status == ClaimStatus.claimed.value
            and holder.current_owner_user_id != verified_user_id
        )
        if held_by_other:
            winner_name = holder.current_owner_username
        if has_winner_rows:
            # somebody else already holds the claim: nobody here can win
            winner_user_id = None
            if not held_by_other:
                winner_name = None
            logger.warning(
                "[ownership] %s already claimed by another user, failing all open claimants", video_fingerprint
            )

    now = datetime.now(timezone.utc)
    won_reason = f"Ownership verified for @{winner_name or 'your account'}"
    lost_reason = (
        f"Ownership claimed by @{winner_name or 'another creator'}. "
        "Only the original creator can submit this video."
    )
    asset_lost_reason = f"Ownership claimed by @{winner_name or 'verified creator'}"

    won_subs, lost_subs = _partition(submissions, winner_user_id)
    for submission in won_subs:
        try:
            await store.mark_submission_won(submission.id, account.id, won_reason, now)
            resolution.winning_submission_ids.append(submission.id)
        except Exception:
            logger.exception("[ownership] Failed to verify submission %s", submission.id)
            resolution.errors += 1
    for submission in lost_subs:
        try:
            await store.mark_submission_lost(submission.id, lost_reason, now)
            resolution.losing_submission_ids.append(submission.id)
        except Exception:
            logger.exception("[ownership] Failed to disqualify submission %s", submission.id)
            resolution.errors += 1

    won_assets, lost_assets = _partition(assets, winner_user_id)
    for asset in won_assets:
        try:
            await store.mark_asset_won(asset.id, account.id, ASSET_WON_REASON, now)
            resolution.winning_asset_ids.append(asset.id)
        except Exception:
            logger.exception("[ownership] Failed to verify raw asset %s", asset.id)
            resolution.errors += 1
    for asset in lost_assets:
        try:
            await store.mark_asset_lost(asset.id, asset_lost_reason)
            resolution.losing_asset_ids.append(asset.id)
        except Exception:
            logger.exception("[ownership] Failed to fail raw asset %s", asset.id)
            resolution.errors += 1

    logger.info(
        "[ownership] Resolved %s: submissions won=%s lost=%s, assets won=%s lost=%s, errors=%s",
        video_fingerprint,
        resolution.winning_submission_ids,
        resolution.losing_submission_ids,
        resolution.winning_asset_ids,
        resolution.losing_asset_ids,
        resolution.errors,
    )
    return resolution
