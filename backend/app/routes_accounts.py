from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.services.raw_video_assets import handle_account_verified
from .deps import SessionDep, StoreDep, UserIdDep
from .models import SocialAccount, SocialPlatform, VerificationStatus
from .schemas import SocialAccountCreate, SocialAccountRead, VerificationResult, VerificationUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def build_profile_url(platform: SocialPlatform, username: str, url: str | None) -> str:
    if url:
        return url
    if platform == SocialPlatform.youtube:
        return f"https://www.youtube.com/@{username}"
    if platform == SocialPlatform.tiktok:
        return f"https://www.tiktok.com/@{username}"
    return f"https://www.instagram.com/{username}/"


async def _get_account_or_404(session, account_id: int) -> SocialAccount:
    account = await session.get(SocialAccount, account_id)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


@router.post("", response_model=SocialAccountRead, status_code=status.HTTP_201_CREATED)
async def connect_account(payload: SocialAccountCreate, user_id: UserIdDep, session: SessionDep) -> SocialAccount:
    account = SocialAccount(
        user_id=user_id,
        platform=payload.platform.value,
        username=payload.username,
        profile_url=build_profile_url(
            payload.platform, payload.username, str(payload.profile_url) if payload.profile_url else None
        ),
        verification_status=VerificationStatus.pending.value,
    )
    session.add(account)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This account is already connected",
        ) from exc
    await session.refresh(account)
    return account


@router.get("", response_model=list[SocialAccountRead])
async def list_accounts(
    user_id: UserIdDep,
    session: SessionDep,
    platform: SocialPlatform | None = Query(default=None),
) -> list[SocialAccount]:
    stmt = select(SocialAccount).where(SocialAccount.user_id == user_id).order_by(SocialAccount.id)
    if platform:
        stmt = stmt.where(SocialAccount.platform == platform.value)
    return list(await session.scalars(stmt))


@router.get("/{account_id}", response_model=SocialAccountRead)
async def get_account(account_id: int, session: SessionDep) -> SocialAccount:
    return await _get_account_or_404(session, account_id)


@router.post("/{account_id}/verification", response_model=VerificationResult)
async def update_verification(
    account_id: int,
    payload: VerificationUpdate,
    session: SessionDep,
    store: StoreDep,
) -> VerificationResult:
    """Record the outcome of the external verification check.

    A VERIFIED outcome settles every open ownership claim the account is involved in.
    """
    account = await _get_account_or_404(session, account_id)
    account.verification_status = payload.status
    account.verified_at = datetime.now(timezone.utc) if payload.status == VerificationStatus.verified.value else None
    session.add(account)
    await session.commit()
    await session.refresh(account)
    account_read = SocialAccountRead.model_validate(account)

    if payload.status != VerificationStatus.verified.value:
        return VerificationResult(account=account_read, dispatched="none")

    settings = get_settings()
    if settings.celery_enabled:
        try:
            from app.worker.tasks import handle_account_verified as celery_handle_account_verified

            result = celery_handle_account_verified.apply_async(args=[account_id], queue="ownership")
            return VerificationResult(account=account_read, dispatched="celery", celery_task_id=result.id)
        except Exception as e:
            logger.warning(f"[accounts] Failed to enqueue ownership resolution for {account_id}: {e}")

    outcome = await handle_account_verified(store, account_id, url_limit=settings.verification_conflict_url_limit)
    return VerificationResult(account=account_read, dispatched="inline", result=outcome)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: int, user_id: UserIdDep, session: SessionDep) -> None:
    account = await _get_account_or_404(session, account_id)
    if account.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")
    await session.delete(account)
    await session.commit()
