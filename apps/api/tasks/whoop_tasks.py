"""
Whoop background tasks.

The hourly beat entry syncs every connected user; the per-user task is for
on-demand backfills (e.g. right after a user connects).
"""
from typing import Dict, Optional
from uuid import UUID
from celery import Task
from tasks import celery_app, get_task_storage
from services.whoop_service import WhoopAPIError, WhoopNotConnectedError
from services.whoop_sync import sync_all_users, sync_recent_metrics, sync_recent_workouts
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.sync_all_whoop_users", bind=True)
def sync_all_whoop_users_task(self: Task, days: Optional[int] = None) -> Dict:
    """
    Sync recent Whoop metrics for every connected user.

    Per-user failures are reported in `results`; the task itself only fails
    when the user list cannot be read.
    """
    result = sync_all_users(get_task_storage(), days=days)
    logger.info(
        result["message"],
        extra={"extra_fields": {"task_id": self.request.id, "total_records": result["total_records"]}},
    )
    return {"status": "success", **result}


@celery_app.task(name="tasks.sync_whoop_user", bind=True)
def sync_whoop_user_task(
    self: Task,
    user_id: str,
    metrics_days: Optional[int] = None,
    workout_days: Optional[int] = None,
) -> Dict:
    """
    Sync metrics and workouts for one user.

    Args:
        user_id: UUID string of the user
        metrics_days / workout_days: look-back windows (defaults from settings)

    Returns:
        {"status": "success", "metrics": {...}, "workouts": {...}} or
        {"status": "error", "error": str}
    """
    storage = get_task_storage()
    uid = UUID(user_id)
    try:
        metrics = sync_recent_metrics(storage, uid, metrics_days)
        workouts = sync_recent_workouts(storage, uid, workout_days)
    except WhoopNotConnectedError:
        return {"status": "error", "error": "Not connected to Whoop"}
    except WhoopAPIError as e:
        logger.error(f"Whoop API error syncing user {user_id}: {e}")
        return {"status": "error", "error": str(e)}

    return {"status": "success", "metrics": metrics, "workouts": workouts}
