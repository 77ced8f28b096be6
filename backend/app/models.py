from __future__ import annotations

from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship as sa_relationship

from .db import Base


def relationship(*args, **kwargs):
    """Wrap SQLAlchemy relationship to forbid lazy loading by default."""
    kwargs.setdefault("lazy", "raise")
    return sa_relationship(*args, **kwargs)


class SocialPlatform(str, Enum):
    tiktok = "tiktok"
    instagram = "instagram"
    youtube = "youtube"


class VerificationStatus(str, Enum):
    pending = "PENDING"
    verified = "VERIFIED"
    failed = "FAILED"


class OwnershipState(str, Enum):
    """Ownership status of a submission or raw asset."""

    pending = "pending"
    verified = "verified"
    contested = "contested"
    failed = "failed"


class ClaimStatus(str, Enum):
    unclaimed = "unclaimed"
    pending = "pending"
    claimed = "claimed"
    contested = "contested"


OPEN_OWNERSHIP_STATES = (OwnershipState.pending.value, OwnershipState.contested.value)


class SocialAccount(Base):
    __tablename__ = "social_accounts"
    __table_args__ = (
        sa.UniqueConstraint("platform", "username", name="uq_social_accounts_platform_username"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    username: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    profile_url: Mapped[str | None] = mapped_column(sa.String(512), nullable=True)
    verification_status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, server_default=VerificationStatus.pending.value
    )
    verified_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )

    owned_assets: Mapped[list["RawVideoAsset"]] = relationship(
        back_populates="owner_account", passive_deletes=True
    )


class RawVideoAsset(Base):
    __tablename__ = "raw_video_assets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    submission_type: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="contest")
    contest_submission_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("contest_submissions.id", ondelete="CASCADE", use_alter=True), nullable=True, index=True
    )
    video_url: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    video_fingerprint: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    mp4_bucket: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)
    mp4_path: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    mp4_size_bytes: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    ownership_status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, server_default=OwnershipState.pending.value, index=True
    )
    ownership_reason: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    owner_social_account_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True
    )
    ownership_verified_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )

    owner_account: Mapped[SocialAccount | None] = relationship(back_populates="owned_assets")


class VideoOwnershipClaim(Base):
    __tablename__ = "video_ownership_claims"

    video_fingerprint: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, server_default=ClaimStatus.unclaimed.value, index=True
    )
    current_owner_asset_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("raw_video_assets.id", ondelete="SET NULL"), nullable=True
    )
    current_owner_user_id: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    current_owner_social_account_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True
    )
    contested_count: Mapped[int] = mapped_column(sa.Integer(), nullable=False, server_default="0")
    last_contested_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )


class ContestSubmission(Base):
    __tablename__ = "contest_submissions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contest_id: Mapped[int] = mapped_column(sa.Integer(), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    social_account_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True
    )
    original_video_url: Mapped[str] = mapped_column(sa.Text(), nullable=False, index=True)
    video_fingerprint: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    video_id: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)
    raw_video_asset_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("raw_video_assets.id", ondelete="SET NULL"), nullable=True, index=True
    )
    verification_status: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="pending")
    mp4_ownership_status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, server_default=OwnershipState.pending.value, index=True
    )
    mp4_ownership_reason: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    mp4_owner_social_account_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True
    )
    mp4_uploaded_by_user_id: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    is_disqualified: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, server_default=sa.false())
    ownership_contested_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    ownership_resolved_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )
