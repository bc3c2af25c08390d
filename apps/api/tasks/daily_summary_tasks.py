"""
Scheduled Daily Summary Tasks

Runs via Celery Beat shortly before midnight UTC so each user's day is
captured once all of it has been logged.
"""
from datetime import date, datetime, timezone
from typing import Dict, Optional
from uuid import UUID
from celery import Task
from tasks import celery_app, get_task_storage
from services.daily_summary import sync_all_users_daily_summary, sync_daily_summary
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.sync_all_daily_summaries", bind=True)
def sync_all_daily_summaries_task(self: Task, day: Optional[str] = None) -> Dict:
    """Regenerate `day` (default: today, UTC) for every user who logs meals."""
    target = date.fromisoformat(day) if day else datetime.now(timezone.utc).date()
    result = sync_all_users_daily_summary(get_task_storage(), target)
    logger.info(result["message"], extra={"extra_fields": {"task_id": self.request.id}})
    return {"status": "success", **result}


@celery_app.task(name="tasks.sync_daily_summary", bind=True)
def sync_daily_summary_task(self: Task, user_id: str, day: str) -> Dict:
    sync_daily_summary(get_task_storage(), date.fromisoformat(day), UUID(user_id))
    return {"status": "success", "user_id": user_id, "date": day}
