from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .services.ownership_store import OwnershipStore, SqlOwnershipStore


async def get_ownership_store(session: AsyncSession = Depends(get_session)) -> OwnershipStore:
    return SqlOwnershipStore(session)


def current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Caller id forwarded by the hosted auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    return x_user_id.strip()


SessionDep = Annotated[AsyncSession, Depends(get_session)]
StoreDep = Annotated[OwnershipStore, Depends(get_ownership_store)]
UserIdDep = Annotated[str, Depends(current_user_id)]
