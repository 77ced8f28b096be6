"""
OwnershipStore: the queries the ownership/conflict resolvers need.

The resolvers only talk to this interface; SqlOwnershipStore is the
Postgres implementation used by the API and the worker.
"""
from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    OPEN_OWNERSHIP_STATES,
    ClaimStatus,
    ContestSubmission,
    OwnershipState,
    RawVideoAsset,
    SocialAccount,
    VerificationStatus,
    VideoOwnershipClaim,
)


@dataclass(frozen=True)
class AccountRecord:
    id: int
    user_id: str
    platform: str
    username: str | None = None
    profile_url: str | None = None
    verification_status: str = VerificationStatus.pending.value


@dataclass(frozen=True)
class VerifiedAsset:
    id: int
    user_id: str
    owner_social_account_id: int | None
    owner_user_id: str | None = None
    owner_username: str | None = None


@dataclass(frozen=True)
class ClaimRecord:
    video_fingerprint: str
    platform: str
    status: str
    current_owner_user_id: str | None = None
    current_owner_social_account_id: int | None = None
    current_owner_username: str | None = None
    contested_count: int = 0


@dataclass(frozen=True)
class SubmissionRecord:
    id: int
    user_id: str
    mp4_ownership_status: str


@dataclass(frozen=True)
class AssetRecord:
    id: int
    user_id: str
    contest_submission_id: int | None = None


@dataclass(frozen=True)
class LinkCandidate:
    """Asset or submission row not yet tied to a social account."""

    id: int
    video_url: str


class OwnershipStore(Protocol):
    async def find_verified_asset(self, video_fingerprint: str) -> VerifiedAsset | None: ...

    async def find_claim(self, video_fingerprint: str) -> ClaimRecord | None: ...

    async def list_verified_accounts(self, user_id: str, platform: str) -> list[AccountRecord]: ...

    async def get_account(self, account_id: int) -> AccountRecord | None: ...

    async def list_open_submissions(self, video_url: str, limit: int | None = None) -> list[SubmissionRecord]: ...

    async def list_open_assets(self, video_fingerprint: str) -> list[AssetRecord]: ...

    async def mark_submission_won(
        self, submission_id: int, account_id: int, reason: str, resolved_at: datetime
    ) -> None: ...

    async def mark_submission_lost(self, submission_id: int, reason: str, resolved_at: datetime) -> None: ...

    async def mark_asset_won(self, asset_id: int, account_id: int, reason: str, verified_at: datetime) -> None: ...

    async def mark_asset_lost(self, asset_id: int, reason: str) -> None: ...

    async def claim_video(
        self,
        video_fingerprint: str,
        platform: str,
        user_id: str,
        account_id: int | None,
        asset_id: int | None = None,
    ) -> bool: ...

    async def record_claim_status(self, video_fingerprint: str, platform: str, status: ClaimStatus) -> None: ...

    # account linking
    async def list_accounts(self, user_id: str, platform: str) -> list[AccountRecord]: ...

    async def list_unlinked_assets(self, user_id: str, platform: str) -> list[LinkCandidate]: ...

    async def list_unlinked_submissions(self, user_id: str, platform: str) -> list[LinkCandidate]: ...

    async def link_assets(self, asset_ids: list[int], account_id: int, user_id: str) -> None: ...

    async def link_submissions(self, submission_ids: list[int], account_id: int) -> None: ...

    async def list_open_video_urls(self, account_id: int, limit: int) -> list[str]: ...


def _rollback_on_error(method):
    """Roll the session back when a query fails so the request can keep using it."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except Exception:
            await self.session.rollback()
            raise

    return wrapper


def _account_record(account: SocialAccount) -> AccountRecord:
    return AccountRecord(
        id=account.id,
        user_id=account.user_id,
        platform=account.platform,
        username=account.username,
        profile_url=account.profile_url,
        verification_status=account.verification_status,
    )


class SqlOwnershipStore:
    """OwnershipStore over an AsyncSession. Every write commits on its own."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _write(self, stmt) -> int:
        try:
            result = await self.session.execute(stmt.execution_options(synchronize_session=False))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    # ── Reads ────────────────────────────────────────────────

    @_rollback_on_error
    async def find_verified_asset(self, video_fingerprint: str) -> VerifiedAsset | None:
        stmt = (
            select(RawVideoAsset, SocialAccount.user_id, SocialAccount.username)
            .outerjoin(SocialAccount, SocialAccount.id == RawVideoAsset.owner_social_account_id)
            .where(
                RawVideoAsset.video_fingerprint == video_fingerprint,
                RawVideoAsset.ownership_status == OwnershipState.verified.value,
            )
            .order_by(RawVideoAsset.ownership_verified_at.asc(), RawVideoAsset.id.asc())
            .limit(1)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        asset, owner_user_id, owner_username = row
        return VerifiedAsset(
            id=asset.id,
            user_id=asset.user_id,
            owner_social_account_id=asset.owner_social_account_id,
            owner_user_id=owner_user_id,
            owner_username=owner_username,
        )

    @_rollback_on_error
    async def find_claim(self, video_fingerprint: str) -> ClaimRecord | None:
        stmt = (
            select(VideoOwnershipClaim, SocialAccount.username)
            .outerjoin(SocialAccount, SocialAccount.id == VideoOwnershipClaim.current_owner_social_account_id)
            .where(VideoOwnershipClaim.video_fingerprint == video_fingerprint)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        claim, username = row
        return ClaimRecord(
            video_fingerprint=claim.video_fingerprint,
            platform=claim.platform,
            status=claim.status,
            current_owner_user_id=claim.current_owner_user_id,
            current_owner_social_account_id=claim.current_owner_social_account_id,
            current_owner_username=username,
            contested_count=claim.contested_count or 0,
        )

    @_rollback_on_error
    async def list_verified_accounts(self, user_id: str, platform: str) -> list[AccountRecord]:
        result = await self.session.scalars(
            select(SocialAccount)
            .where(
                SocialAccount.user_id == user_id,
                SocialAccount.platform == platform,
                SocialAccount.verification_status == VerificationStatus.verified.value,
            )
            .order_by(SocialAccount.id)
        )
        return [_account_record(account) for account in result]

    @_rollback_on_error
    async def get_account(self, account_id: int) -> AccountRecord | None:
        account = await self.session.get(SocialAccount, account_id, populate_existing=True)
        return _account_record(account) if account else None

    @_rollback_on_error
    async def list_open_submissions(self, video_url: str, limit: int | None = None) -> list[SubmissionRecord]:
        stmt = (
            select(ContestSubmission.id, ContestSubmission.user_id, ContestSubmission.mp4_ownership_status)
            .where(
                ContestSubmission.original_video_url == video_url,
                ContestSubmission.mp4_ownership_status.in_(OPEN_OWNERSHIP_STATES),
            )
            .order_by(ContestSubmission.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await self.session.execute(stmt)).all()
        return [SubmissionRecord(id=r.id, user_id=r.user_id, mp4_ownership_status=r.mp4_ownership_status) for r in rows]

    @_rollback_on_error
    async def list_open_assets(self, video_fingerprint: str) -> list[AssetRecord]:
        rows = (
            await self.session.execute(
                select(RawVideoAsset.id, RawVideoAsset.user_id, RawVideoAsset.contest_submission_id)
                .where(
                    RawVideoAsset.video_fingerprint == video_fingerprint,
                    RawVideoAsset.ownership_status.in_(OPEN_OWNERSHIP_STATES),
                )
                .order_by(RawVideoAsset.id)
            )
        ).all()
        return [AssetRecord(id=r.id, user_id=r.user_id, contest_submission_id=r.contest_submission_id) for r in rows]

    # ── Writes ───────────────────────────────────────────────

    async def mark_submission_won(
        self, submission_id: int, account_id: int, reason: str, resolved_at: datetime
    ) -> None:
        await self._write(
            update(ContestSubmission)
            .where(ContestSubmission.id == submission_id)
            .values(
                mp4_ownership_status=OwnershipState.verified.value,
                mp4_owner_social_account_id=account_id,
                mp4_ownership_reason=reason,
                verification_status="verified",
                ownership_resolved_at=resolved_at,
            )
        )

    async def mark_submission_lost(self, submission_id: int, reason: str, resolved_at: datetime) -> None:
        await self._write(
            update(ContestSubmission)
            .where(ContestSubmission.id == submission_id)
            .values(
                mp4_ownership_status=OwnershipState.failed.value,
                mp4_ownership_reason=reason,
                verification_status="failed",
                is_disqualified=True,
                ownership_resolved_at=resolved_at,
            )
        )

    async def mark_asset_won(self, asset_id: int, account_id: int, reason: str, verified_at: datetime) -> None:
        await self._write(
            update(RawVideoAsset)
            .where(RawVideoAsset.id == asset_id)
            .values(
                ownership_status=OwnershipState.verified.value,
                owner_social_account_id=account_id,
                ownership_reason=reason,
                ownership_verified_at=verified_at,
            )
        )

    async def mark_asset_lost(self, asset_id: int, reason: str) -> None:
        await self._write(
            update(RawVideoAsset)
            .where(RawVideoAsset.id == asset_id)
            .values(ownership_status=OwnershipState.failed.value, ownership_reason=reason)
        )

    @_rollback_on_error
    async def claim_video(
        self,
        video_fingerprint: str,
        platform: str,
        user_id: str,
        account_id: int | None,
        asset_id: int | None = None,
    ) -> bool:
        """Compare-and-swap the claim row to ``claimed`` for user_id.

        Fails when another user already holds the claim.
        """
        values = {
            "status": ClaimStatus.claimed.value,
            "current_owner_user_id": user_id,
            "current_owner_social_account_id": account_id,
            "updated_at": datetime.now(timezone.utc),
        }
        if asset_id is not None:
            values["current_owner_asset_id"] = asset_id
        cas = (
            update(VideoOwnershipClaim)
            .where(
                and_(
                    VideoOwnershipClaim.video_fingerprint == video_fingerprint,
                    or_(
                        VideoOwnershipClaim.status != ClaimStatus.claimed.value,
                        VideoOwnershipClaim.current_owner_user_id == user_id,
                    ),
                )
            )
            .values(**values)
        )
        if await self._write(cas):
            return True

        existing = await self.session.get(VideoOwnershipClaim, video_fingerprint, populate_existing=True)
        if existing is not None:
            return False

        self.session.add(
            VideoOwnershipClaim(
                video_fingerprint=video_fingerprint,
                platform=platform,
                status=ClaimStatus.claimed.value,
                current_owner_asset_id=asset_id,
                current_owner_user_id=user_id,
                current_owner_social_account_id=account_id,
                contested_count=0,
            )
        )
        try:
            await self.session.commit()
            return True
        except IntegrityError:
            # lost the insert race, retry against the row that won
            await self.session.rollback()
            return bool(await self._write(cas))

    @_rollback_on_error
    async def record_claim_status(self, video_fingerprint: str, platform: str, status: ClaimStatus) -> None:
        now = datetime.now(timezone.utc)
        claim = await self.session.get(VideoOwnershipClaim, video_fingerprint, populate_existing=True)
        if claim is None:
            claim = VideoOwnershipClaim(
                video_fingerprint=video_fingerprint,
                platform=platform,
                status=status.value,
                contested_count=1 if status == ClaimStatus.contested else 0,
                last_contested_at=now if status == ClaimStatus.contested else None,
            )
        elif status == ClaimStatus.contested:
            if claim.status != ClaimStatus.claimed.value:
                claim.status = ClaimStatus.contested.value
            claim.contested_count = (claim.contested_count or 0) + 1
            claim.last_contested_at = now
        elif status == ClaimStatus.pending and claim.status == ClaimStatus.unclaimed.value:
            claim.status = ClaimStatus.pending.value
        self.session.add(claim)
        await self.session.commit()

    # ── Account linking ──────────────────────────────────────

    @_rollback_on_error
    async def list_accounts(self, user_id: str, platform: str) -> list[AccountRecord]:
        result = await self.session.scalars(
            select(SocialAccount)
            .where(SocialAccount.user_id == user_id, SocialAccount.platform == platform)
            .order_by(SocialAccount.id)
        )
        return [_account_record(account) for account in result]

    @_rollback_on_error
    async def list_unlinked_assets(self, user_id: str, platform: str) -> list[LinkCandidate]:
        rows = (
            await self.session.execute(
                select(RawVideoAsset.id, RawVideoAsset.video_url).where(
                    RawVideoAsset.user_id == user_id,
                    RawVideoAsset.platform == platform,
                    RawVideoAsset.owner_social_account_id.is_(None),
                )
            )
        ).all()
        return [LinkCandidate(id=r.id, video_url=r.video_url) for r in rows]

    @_rollback_on_error
    async def list_unlinked_submissions(self, user_id: str, platform: str) -> list[LinkCandidate]:
        rows = (
            await self.session.execute(
                select(ContestSubmission.id, ContestSubmission.original_video_url).where(
                    ContestSubmission.user_id == user_id,
                    ContestSubmission.platform == platform,
                    ContestSubmission.social_account_id.is_(None),
                )
            )
        ).all()
        return [LinkCandidate(id=r.id, video_url=r.original_video_url) for r in rows]

    async def link_assets(self, asset_ids: list[int], account_id: int, user_id: str) -> None:
        if not asset_ids:
            return
        await self._write(
            update(RawVideoAsset)
            .where(RawVideoAsset.id.in_(asset_ids))
            .values(owner_social_account_id=account_id, ownership_reason="Linked to connected account")
        )
        await self._write(
            update(ContestSubmission)
            .where(ContestSubmission.raw_video_asset_id.in_(asset_ids))
            .values(
                social_account_id=account_id,
                mp4_ownership_reason="Account linked, pending verification",
                mp4_uploaded_by_user_id=user_id,
            )
        )

    async def link_submissions(self, submission_ids: list[int], account_id: int) -> None:
        if not submission_ids:
            return
        await self._write(
            update(ContestSubmission)
            .where(ContestSubmission.id.in_(submission_ids))
            .values(social_account_id=account_id, mp4_ownership_reason="Account linked, pending verification")
        )

    @_rollback_on_error
    async def list_open_video_urls(self, account_id: int, limit: int) -> list[str]:
        submission_urls = await self.session.scalars(
            select(ContestSubmission.original_video_url)
            .where(
                ContestSubmission.social_account_id == account_id,
                ContestSubmission.mp4_ownership_status.in_(OPEN_OWNERSHIP_STATES),
            )
            .order_by(ContestSubmission.id)
            .limit(limit)
        )
        asset_urls = await self.session.scalars(
            select(RawVideoAsset.video_url)
            .where(
                RawVideoAsset.owner_social_account_id == account_id,
                RawVideoAsset.ownership_status.in_(OPEN_OWNERSHIP_STATES),
            )
            .order_by(RawVideoAsset.id)
            .limit(limit)
        )
        urls = list(dict.fromkeys([*submission_urls, *asset_urls]))
        return urls[:limit]
