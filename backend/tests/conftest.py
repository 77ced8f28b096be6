"""Test fixtures for the contest ownership backend.

Core logic is exercised against an in-memory OwnershipStore; the ownership
API tests swap the SQL-backed store for the same fake through dependency
overrides. Submission and account routes run against a real database
session (`db_client`).
"""
import os
import sys
from dataclasses import dataclass, replace
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add backend dir to path so `app` imports work without an install
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("CELERY_ENABLED", "false")

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

from app.models import ClaimStatus, OPEN_OWNERSHIP_STATES, VerificationStatus
from app.services.ownership_store import (
    AccountRecord,
    AssetRecord,
    ClaimRecord,
    LinkCandidate,
    SubmissionRecord,
    VerifiedAsset,
)
from app.services.video_fingerprint import fingerprint


@dataclass
class FakeSubmission:
    id: int
    user_id: str
    video_url: str
    platform: str = "tiktok"
    mp4_ownership_status: str = "pending"
    verification_status: str = "pending"
    social_account_id: int | None = None
    mp4_owner_social_account_id: int | None = None
    mp4_ownership_reason: str | None = None
    raw_video_asset_id: int | None = None
    is_disqualified: bool = False
    ownership_resolved_at: datetime | None = None


@dataclass
class FakeAsset:
    id: int
    user_id: str
    video_url: str
    platform: str = "tiktok"
    ownership_status: str = "pending"
    owner_social_account_id: int | None = None
    ownership_reason: str | None = None
    ownership_verified_at: datetime | None = None
    contest_submission_id: int | None = None

    @property
    def video_fingerprint(self) -> str:
        return fingerprint(self.video_url)


@dataclass
class FakeClaim:
    video_fingerprint: str
    platform: str
    status: str
    current_owner_user_id: str | None = None
    current_owner_social_account_id: int | None = None
    current_owner_asset_id: int | None = None
    contested_count: int = 0


class FakeOwnershipStore:
    """In-memory OwnershipStore. Methods named in ``fail_on`` raise RuntimeError."""

    def __init__(self):
        self.accounts: dict[int, AccountRecord] = {}
        self.submissions: dict[int, FakeSubmission] = {}
        self.assets: dict[int, FakeAsset] = {}
        self.claims: dict[str, FakeClaim] = {}
        self.fail_on: set[str] = set()
        self.fail_rows: set[int] = set()
        self.calls: list[str] = []
        self._next_id = 1

    # ── seeding helpers ──────────────────────────────────────

    def _id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_account(self, user_id, platform="tiktok", username=None, profile_url=None, verified=True) -> AccountRecord:
        account = AccountRecord(
            id=self._id(),
            user_id=user_id,
            platform=platform,
            username=username,
            profile_url=profile_url,
            verification_status=VerificationStatus.verified.value if verified else VerificationStatus.pending.value,
        )
        self.accounts[account.id] = account
        return account

    def verify(self, account_id: int) -> AccountRecord:
        account = replace(self.accounts[account_id], verification_status=VerificationStatus.verified.value)
        self.accounts[account_id] = account
        return account

    def add_submission(self, user_id, video_url, **kwargs) -> FakeSubmission:
        submission = FakeSubmission(id=self._id(), user_id=user_id, video_url=video_url, **kwargs)
        self.submissions[submission.id] = submission
        return submission

    def add_asset(self, user_id, video_url, **kwargs) -> FakeAsset:
        asset = FakeAsset(id=self._id(), user_id=user_id, video_url=video_url, **kwargs)
        self.assets[asset.id] = asset
        return asset

    def _check(self, name: str, row_id: int | None = None) -> None:
        self.calls.append(name)
        if name in self.fail_on or (row_id is not None and row_id in self.fail_rows):
            raise RuntimeError(f"database unavailable: {name}")

    # ── reads ────────────────────────────────────────────────

    async def find_verified_asset(self, video_fingerprint):
        self._check("find_verified_asset")
        for asset in sorted(self.assets.values(), key=lambda a: a.id):
            if asset.video_fingerprint == video_fingerprint and asset.ownership_status == "verified":
                owner = self.accounts.get(asset.owner_social_account_id)
                return VerifiedAsset(
                    id=asset.id,
                    user_id=asset.user_id,
                    owner_social_account_id=asset.owner_social_account_id,
                    owner_user_id=owner.user_id if owner else None,
                    owner_username=owner.username if owner else None,
                )
        return None

    async def find_claim(self, video_fingerprint):
        self._check("find_claim")
        claim = self.claims.get(video_fingerprint)
        if claim is None:
            return None
        owner = self.accounts.get(claim.current_owner_social_account_id)
        return ClaimRecord(
            video_fingerprint=claim.video_fingerprint,
            platform=claim.platform,
            status=claim.status,
            current_owner_user_id=claim.current_owner_user_id,
            current_owner_social_account_id=claim.current_owner_social_account_id,
            current_owner_username=owner.username if owner else None,
            contested_count=claim.contested_count,
        )

    async def list_verified_accounts(self, user_id, platform):
        self._check("list_verified_accounts")
        return [
            a for a in self.accounts.values()
            if a.user_id == user_id and a.platform == platform and a.verification_status == "VERIFIED"
        ]

    async def list_accounts(self, user_id, platform):
        self._check("list_accounts")
        return [a for a in self.accounts.values() if a.user_id == user_id and a.platform == platform]

    async def get_account(self, account_id):
        self._check("get_account")
        return self.accounts.get(account_id)

    async def list_open_submissions(self, video_url, limit=None):
        self._check("list_open_submissions")
        rows = [
            SubmissionRecord(id=s.id, user_id=s.user_id, mp4_ownership_status=s.mp4_ownership_status)
            for s in sorted(self.submissions.values(), key=lambda s: s.id)
            if s.video_url == video_url and s.mp4_ownership_status in OPEN_OWNERSHIP_STATES
        ]
        return rows[:limit] if limit is not None else rows

    async def list_open_assets(self, video_fingerprint):
        self._check("list_open_assets")
        return [
            AssetRecord(id=a.id, user_id=a.user_id, contest_submission_id=a.contest_submission_id)
            for a in sorted(self.assets.values(), key=lambda a: a.id)
            if a.video_fingerprint == video_fingerprint and a.ownership_status in OPEN_OWNERSHIP_STATES
        ]

    async def list_unlinked_assets(self, user_id, platform):
        self._check("list_unlinked_assets")
        return [
            LinkCandidate(id=a.id, video_url=a.video_url)
            for a in self.assets.values()
            if a.user_id == user_id and a.platform == platform and a.owner_social_account_id is None
        ]

    async def list_unlinked_submissions(self, user_id, platform):
        self._check("list_unlinked_submissions")
        return [
            LinkCandidate(id=s.id, video_url=s.video_url)
            for s in self.submissions.values()
            if s.user_id == user_id and s.platform == platform and s.social_account_id is None
        ]

    async def list_open_video_urls(self, account_id, limit):
        self._check("list_open_video_urls")
        urls = [
            s.video_url for s in sorted(self.submissions.values(), key=lambda s: s.id)
            if s.social_account_id == account_id and s.mp4_ownership_status in OPEN_OWNERSHIP_STATES
        ]
        urls += [
            a.video_url for a in sorted(self.assets.values(), key=lambda a: a.id)
            if a.owner_social_account_id == account_id and a.ownership_status in OPEN_OWNERSHIP_STATES
        ]
        return list(dict.fromkeys(urls))[:limit]

    # ── writes ───────────────────────────────────────────────

    async def mark_submission_won(self, submission_id, account_id, reason, resolved_at):
        self._check("mark_submission_won", submission_id)
        s = self.submissions[submission_id]
        s.mp4_ownership_status = "verified"
        s.verification_status = "verified"
        s.mp4_owner_social_account_id = account_id
        s.mp4_ownership_reason = reason
        s.ownership_resolved_at = resolved_at

    async def mark_submission_lost(self, submission_id, reason, resolved_at):
        self._check("mark_submission_lost", submission_id)
        s = self.submissions[submission_id]
        s.mp4_ownership_status = "failed"
        s.verification_status = "failed"
        s.mp4_ownership_reason = reason
        s.is_disqualified = True
        s.ownership_resolved_at = resolved_at

    async def mark_asset_won(self, asset_id, account_id, reason, verified_at):
        self._check("mark_asset_won", asset_id)
        a = self.assets[asset_id]
        a.ownership_status = "verified"
        a.owner_social_account_id = account_id
        a.ownership_reason = reason
        a.ownership_verified_at = verified_at

    async def mark_asset_lost(self, asset_id, reason):
        self._check("mark_asset_lost", asset_id)
        a = self.assets[asset_id]
        a.ownership_status = "failed"
        a.ownership_reason = reason

    async def claim_video(self, video_fingerprint, platform, user_id, account_id, asset_id=None):
        self._check("claim_video")
        claim = self.claims.get(video_fingerprint)
        if claim is None:
            self.claims[video_fingerprint] = FakeClaim(
                video_fingerprint=video_fingerprint,
                platform=platform,
                status=ClaimStatus.claimed.value,
                current_owner_user_id=user_id,
                current_owner_social_account_id=account_id,
                current_owner_asset_id=asset_id,
            )
            return True
        if claim.status == ClaimStatus.claimed.value and claim.current_owner_user_id != user_id:
            return False
        claim.status = ClaimStatus.claimed.value
        claim.current_owner_user_id = user_id
        claim.current_owner_social_account_id = account_id
        if asset_id is not None:
            claim.current_owner_asset_id = asset_id
        return True

    async def record_claim_status(self, video_fingerprint, platform, status):
        self._check("record_claim_status")
        claim = self.claims.get(video_fingerprint)
        if claim is None:
            self.claims[video_fingerprint] = FakeClaim(
                video_fingerprint=video_fingerprint,
                platform=platform,
                status=status.value,
                contested_count=1 if status == ClaimStatus.contested else 0,
            )
        elif status == ClaimStatus.contested:
            if claim.status != ClaimStatus.claimed.value:
                claim.status = ClaimStatus.contested.value
            claim.contested_count += 1
        elif status == ClaimStatus.pending and claim.status == ClaimStatus.unclaimed.value:
            claim.status = ClaimStatus.pending.value

    async def link_assets(self, asset_ids, account_id, user_id):
        self._check("link_assets")
        for asset_id in asset_ids:
            self.assets[asset_id].owner_social_account_id = account_id
            for s in self.submissions.values():
                if s.raw_video_asset_id == asset_id:
                    s.social_account_id = account_id

    async def link_submissions(self, submission_ids, account_id):
        self._check("link_submissions")
        for submission_id in submission_ids:
            self.submissions[submission_id].social_account_id = account_id


ALICE_URL = "https://www.tiktok.com/@alice/video/123"


@pytest.fixture
def store():
    return FakeOwnershipStore()


@pytest.fixture
def app(store):
    """FastAPI app with the ownership store replaced by the in-memory fake."""
    from app.deps import get_ownership_store
    from app.main import app as fastapi_app

    async def override_store():
        return store

    fastapi_app.dependency_overrides[get_ownership_store] = override_store
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db_client():
    """TestClient over a real database session (in-memory SQLite unless TEST_DATABASE_URL is set)."""
    from app.db import Base, get_session
    from app.main import app as fastapi_app

    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    schema_ready = []

    async def override_get_session():
        if not schema_ready:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
            schema_ready.append(True)
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_session] = override_get_session
    with TestClient(fastapi_app) as client:
        yield client
    fastapi_app.dependency_overrides.clear()
