from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query, status

from app.services.contest_ownership import check_video_ownership, resolve_ownership_conflicts
from app.services.url_utils import UnsupportedVideoUrl, detect_platform, standardize_url
from app.services.video_fingerprint import canonical_video_url, fingerprint
from .deps import StoreDep, UserIdDep
from .models import VerificationStatus
from .schemas import ClaimRead, ConflictResolveRequest, OwnershipCheckRequest, OwnershipCheckResponse
from .settings import get_settings

router = APIRouter(prefix="/api/ownership", tags=["ownership"])


def _standardize_or_422(url: str) -> str:
    try:
        return standardize_url(url)
    except UnsupportedVideoUrl as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get("/fingerprint")
async def get_fingerprint(url: str = Query(..., min_length=1)) -> dict:
    return {"url": url, "canonical_url": canonical_video_url(url), "video_fingerprint": fingerprint(url)}


@router.post("/check", response_model=OwnershipCheckResponse)
async def check_ownership(
    payload: OwnershipCheckRequest, user_id: UserIdDep, store: StoreDep
) -> OwnershipCheckResponse:
    """Dry-run of the submission ownership check. Never writes."""
    video_url = _standardize_or_422(payload.video_url)
    platform = payload.platform or detect_platform(video_url)
    if platform is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Unsupported platform")

    result = await check_video_ownership(
        store, video_url, user_id, platform, pending_scan_limit=get_settings().ownership_pending_scan_limit
    )
    return OwnershipCheckResponse(video_fingerprint=fingerprint(video_url), **result.as_dict())


@router.post("/resolve")
async def resolve_conflicts(payload: ConflictResolveRequest, store: StoreDep) -> dict:
    account = await store.get_account(payload.verified_account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    if account.verification_status != VerificationStatus.verified.value:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Account is not verified")

    video_url = _standardize_or_422(payload.video_url)
    resolution = await resolve_ownership_conflicts(store, video_url, account.id, account.user_id)
    return resolution.as_dict()


@router.get("/claims/{video_fingerprint}", response_model=ClaimRead)
async def get_claim(video_fingerprint: str, store: StoreDep) -> ClaimRead:
    claim = await store.find_claim(video_fingerprint)
    if claim is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")
    return ClaimRead(**asdict(claim))
