"""
Scheduled trigger endpoints.

Called by an external scheduler with `Authorization: Bearer <CRON_SECRET>`.
The same work also runs from Celery beat (see tasks/).
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from core.auth import require_cron_secret
from core.database import StorageClient, get_storage
from services.daily_summary import sync_all_users_daily_summary
from services.whoop_sync import sync_all_users

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.get("/whoop-sync")
def cron_whoop_sync(storage: StorageClient = Depends(get_storage)):
    """Sync the last couple of days of Whoop metrics for every connected user."""
    result = sync_all_users(storage)
    logger.info(result["message"])
    return result


@router.get("/daily-sync")
def cron_daily_sync(storage: StorageClient = Depends(get_storage)):
    """Regenerate today's (UTC) summary for every user who logs meals."""
    result = sync_all_users_daily_summary(storage, datetime.now(timezone.utc).date())
    logger.info(result["message"])
    return result
