"""
Celery tasks for ownership resolution.

ownership.handle_account_verified runs the verification fan-out in a
synchronous Celery worker context using asyncio.run().
"""
from __future__ import annotations

import asyncio
import logging

from app.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _handle_account_verified_async(account_id: int) -> dict:
    """Run handle_account_verified with a fresh engine bound to this event loop."""
    from app.db import build_session_factory
    from app.services.ownership_store import SqlOwnershipStore
    from app.services.raw_video_assets import handle_account_verified
    from app.settings import get_settings

    settings = get_settings()
    engine, session_factory = build_session_factory(settings.async_database_url)
    try:
        async with session_factory() as session:
            result = await handle_account_verified(
                SqlOwnershipStore(session),
                account_id,
                url_limit=settings.verification_conflict_url_limit,
            )
            logger.info(f"[worker] Ownership resolution for account {account_id} finished: {result}")
            return result
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name="ownership.handle_account_verified",
    queue="ownership",
)
def handle_account_verified(self, account_id: int) -> dict:
    try:
        return asyncio.run(_handle_account_verified_async(account_id))
    except Exception as e:
        logger.error(f"[worker] Ownership resolution for account {account_id} failed: {e}")
        return {"account_id": account_id, "error": str(e)[:500]}
