from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select

from app.services.contest_ownership import OwnershipContested, OwnershipFailed, OwnershipVerified, check_video_ownership
from app.services.raw_video_assets import create_raw_video_asset, resolve_account_ownership, upsert_ownership_claim
from app.services.url_utils import (
    UnsupportedVideoUrl,
    detect_platform,
    extract_video_identifiers,
    is_valid_video_url,
    standardize_url,
)
from app.services.video_fingerprint import fingerprint
from .deps import SessionDep, StoreDep, UserIdDep
from .models import ClaimStatus, ContestSubmission, OwnershipState
from .schemas import SubmissionCreate, SubmissionRead
from .settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contests", tags=["contests"])


@router.post(
    "/{contest_id}/submissions",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_submission(
    contest_id: int,
    payload: SubmissionCreate,
    user_id: UserIdDep,
    session: SessionDep,
    store: StoreDep,
) -> ContestSubmission:
    settings = get_settings()

    try:
        video_url = standardize_url(payload.video_url)
    except UnsupportedVideoUrl as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    platform = detect_platform(video_url)
    if platform is None or not is_valid_video_url(video_url):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Only TikTok, Instagram and YouTube Shorts video URLs are supported",
        )

    duplicate = await session.scalar(
        select(ContestSubmission.id).where(
            ContestSubmission.contest_id == contest_id,
            ContestSubmission.user_id == user_id,
            ContestSubmission.original_video_url == video_url,
        )
    )
    if duplicate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have already submitted this video to this contest",
        )

    ownership = await check_video_ownership(
        store, video_url, user_id, platform, pending_scan_limit=settings.ownership_pending_scan_limit
    )
    logger.info(
        f"[contests] Ownership check url={video_url} user={user_id} platform={platform.value} -> {ownership.status}"
    )
    if isinstance(ownership, OwnershipFailed):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=ownership.reason)

    try:
        account_match = await resolve_account_ownership(
            store, user_id, platform, video_url, require_verified=False
        )
        matched_account_id = account_match.account.id if account_match.account else None
    except Exception as e:
        logger.warning(f"[contests] Account lookup failed for user {user_id}: {e}")
        matched_account_id = None

    now = datetime.now(timezone.utc)
    if isinstance(ownership, OwnershipVerified):
        owns = await upsert_ownership_claim(
            store,
            video_url=video_url,
            platform=platform,
            user_id=user_id,
            status=ClaimStatus.claimed,
            social_account_id=ownership.social_account_id,
        )
        if not owns:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This video is already claimed by another creator. Only the original creator can submit this video.",
            )
        ownership_state = OwnershipState.verified
    elif isinstance(ownership, OwnershipContested):
        ownership_state = OwnershipState.contested
    else:
        ownership_state = OwnershipState.pending

    owner_account_id = ownership.social_account_id if isinstance(ownership, OwnershipVerified) else None
    asset = create_raw_video_asset(
        session,
        user_id=user_id,
        platform=platform,
        video_url=video_url,
        ownership_status=ownership_state,
        bucket=settings.raw_video_bucket,
        mp4_path=payload.mp4_path,
        mp4_size_bytes=payload.mp4_size_bytes,
        owner_social_account_id=owner_account_id or matched_account_id,
        ownership_reason=ownership.reason,
    )
    await session.flush()

    submission = ContestSubmission(
        contest_id=contest_id,
        user_id=user_id,
        social_account_id=matched_account_id,
        original_video_url=video_url,
        video_fingerprint=fingerprint(video_url),
        platform=platform.value,
        video_id=extract_video_identifiers(video_url, platform).video_id,
        raw_video_asset_id=asset.id,
        verification_status="verified" if ownership_state == OwnershipState.verified else "pending",
        mp4_ownership_status=ownership_state.value,
        mp4_ownership_reason=ownership.reason,
        mp4_owner_social_account_id=owner_account_id,
        mp4_uploaded_by_user_id=user_id,
        ownership_contested_at=now if ownership_state == OwnershipState.contested else None,
        ownership_resolved_at=now if ownership_state == OwnershipState.verified else None,
    )
    session.add(submission)
    await session.flush()
    asset.contest_submission_id = submission.id
    session.add(asset)
    await session.commit()
    await session.refresh(submission)

    if ownership_state != OwnershipState.verified:
        claim_status = ClaimStatus.contested if ownership_state == OwnershipState.contested else ClaimStatus.pending
        try:
            await upsert_ownership_claim(
                store, video_url=video_url, platform=platform, user_id=user_id, status=claim_status
            )
        except Exception as e:
            logger.warning(f"[contests] Failed to record claim status for {video_url}: {e}")

    return submission


@router.get("/{contest_id}/submissions", response_model=list[SubmissionRead])
async def list_submissions(
    contest_id: int,
    session: SessionDep,
    ownership_status: OwnershipState | None = Query(default=None),
    include_disqualified: bool = Query(default=True),
) -> list[ContestSubmission]:
    stmt = (
        select(ContestSubmission)
        .where(ContestSubmission.contest_id == contest_id)
        .order_by(ContestSubmission.created_at.desc(), ContestSubmission.id.desc())
    )
    if ownership_status:
        stmt = stmt.where(ContestSubmission.mp4_ownership_status == ownership_status.value)
    if not include_disqualified:
        stmt = stmt.where(ContestSubmission.is_disqualified.is_(False))
    return list(await session.scalars(stmt))
