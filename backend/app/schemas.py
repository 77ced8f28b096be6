from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, HttpUrl, field_validator

from .models import SocialPlatform, VerificationStatus


class SocialAccountBase(BaseModel):
    platform: SocialPlatform
    username: str
    profile_url: HttpUrl | None = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, value: str) -> str:
        return value.strip().replace(" ", "").removeprefix("@").lower()


class SocialAccountCreate(SocialAccountBase):
    pass


class SocialAccountRead(BaseModel):
    id: int
    user_id: str
    platform: SocialPlatform
    username: str | None = None
    profile_url: str | None = None
    verification_status: VerificationStatus
    verified_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class VerificationUpdate(BaseModel):
    status: Literal["VERIFIED", "FAILED"]


class VerificationResult(BaseModel):
    account: SocialAccountRead
    dispatched: Literal["celery", "inline", "none"]
    celery_task_id: str | None = None
    result: dict | None = None


class SubmissionCreate(BaseModel):
    video_url: str
    mp4_path: str | None = None
    mp4_size_bytes: int | None = None

    @field_validator("video_url")
    @classmethod
    def strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("video_url is required")
        return value


class SubmissionRead(BaseModel):
    id: int
    contest_id: int
    user_id: str
    original_video_url: str
    video_fingerprint: str
    platform: SocialPlatform
    video_id: str | None = None
    social_account_id: int | None = None
    raw_video_asset_id: int | None = None
    verification_status: str
    mp4_ownership_status: str
    mp4_ownership_reason: str | None = None
    mp4_owner_social_account_id: int | None = None
    is_disqualified: bool = False
    ownership_contested_at: datetime | None = None
    ownership_resolved_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class OwnershipCheckRequest(BaseModel):
    video_url: str
    platform: SocialPlatform | None = None


class OwnershipCheckResponse(BaseModel):
    status: Literal["verified", "pending", "failed", "contested"]
    reason: str
    video_fingerprint: str
    social_account_id: int | None = None
    claimed_by: str | None = None
    claimed_by_username: str | None = None


class ConflictResolveRequest(BaseModel):
    video_url: str
    verified_account_id: int


class ClaimRead(BaseModel):
    video_fingerprint: str
    platform: str
    status: str
    current_owner_user_id: str | None = None
    current_owner_social_account_id: int | None = None
    current_owner_username: str | None = None
    contested_count: int = 0
