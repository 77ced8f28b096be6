"""create social_accounts, contest_submissions, raw_video_assets, video_ownership_claims

Revision ID: 0001_create_ownership_tables
Revises:
Create Date: 2026-10-19 10:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_create_ownership_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "social_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("profile_url", sa.String(length=512), nullable=True),
        sa.Column("verification_status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("platform", "username", name="uq_social_accounts_platform_username"),
    )
    op.create_index("ix_social_accounts_user_id", "social_accounts", ["user_id"])

    op.create_table(
        "contest_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contest_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "social_account_id",
            sa.Integer(),
            sa.ForeignKey("social_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("original_video_url", sa.Text(), nullable=False),
        sa.Column("video_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("video_id", sa.String(length=128), nullable=True),
        sa.Column("raw_video_asset_id", sa.Integer(), nullable=True),
        sa.Column("verification_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("mp4_ownership_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("mp4_ownership_reason", sa.Text(), nullable=True),
        sa.Column(
            "mp4_owner_social_account_id",
            sa.Integer(),
            sa.ForeignKey("social_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("mp4_uploaded_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("is_disqualified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ownership_contested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ownership_resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_contest_submissions_contest_id", "contest_submissions", ["contest_id"])
    op.create_index("ix_contest_submissions_user_id", "contest_submissions", ["user_id"])
    op.create_index("ix_contest_submissions_original_video_url", "contest_submissions", ["original_video_url"])
    op.create_index("ix_contest_submissions_video_fingerprint", "contest_submissions", ["video_fingerprint"])
    op.create_index("ix_contest_submissions_mp4_ownership_status", "contest_submissions", ["mp4_ownership_status"])
    op.create_index("ix_contest_submissions_raw_video_asset_id", "contest_submissions", ["raw_video_asset_id"])

    op.create_table(
        "raw_video_assets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("submission_type", sa.String(length=16), nullable=False, server_default="contest"),
        sa.Column(
            "contest_submission_id",
            sa.Integer(),
            sa.ForeignKey("contest_submissions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("video_url", sa.Text(), nullable=False),
        sa.Column("video_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("mp4_bucket", sa.String(length=128), nullable=True),
        sa.Column("mp4_path", sa.Text(), nullable=True),
        sa.Column("mp4_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("ownership_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("ownership_reason", sa.Text(), nullable=True),
        sa.Column(
            "owner_social_account_id",
            sa.Integer(),
            sa.ForeignKey("social_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("ownership_verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_raw_video_assets_user_id", "raw_video_assets", ["user_id"])
    op.create_index("ix_raw_video_assets_contest_submission_id", "raw_video_assets", ["contest_submission_id"])
    op.create_index("ix_raw_video_assets_video_fingerprint", "raw_video_assets", ["video_fingerprint"])
    op.create_index("ix_raw_video_assets_ownership_status", "raw_video_assets", ["ownership_status"])

    op.create_foreign_key(
        "fk_contest_submissions_raw_video_asset_id",
        "contest_submissions",
        "raw_video_assets",
        ["raw_video_asset_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "video_ownership_claims",
        sa.Column("video_fingerprint", sa.String(length=64), primary_key=True),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="unclaimed"),
        sa.Column(
            "current_owner_asset_id",
            sa.Integer(),
            sa.ForeignKey("raw_video_assets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("current_owner_user_id", sa.String(length=64), nullable=True),
        sa.Column(
            "current_owner_social_account_id",
            sa.Integer(),
            sa.ForeignKey("social_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("contested_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_contested_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_video_ownership_claims_status", "video_ownership_claims", ["status"])


def downgrade() -> None:
    op.drop_index("ix_video_ownership_claims_status", table_name="video_ownership_claims")
    op.drop_table("video_ownership_claims")
    op.drop_constraint("fk_contest_submissions_raw_video_asset_id", "contest_submissions", type_="foreignkey")
    op.drop_table("raw_video_assets")
    op.drop_table("contest_submissions")
    op.drop_table("social_accounts")
