"""
Celery tasks for background processing.

Tasks are defined here and imported by both the API (to enqueue) and
the worker (to execute).
"""
from typing import Optional
from celery import Celery
from celery.signals import worker_process_shutdown
from core.config import settings
from core.database import StorageClient
from celerybeat_schedule import beat_schedule

# Create Celery app instance
celery_app = Celery(
    "daily_health",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes max per task
    task_soft_time_limit=25 * 60,  # 25 minutes soft limit
    beat_schedule=beat_schedule,
)

# One storage handle per worker process, opened on first use.
_storage: Optional[StorageClient] = None


def get_task_storage() -> StorageClient:
    global _storage
    if _storage is None:
        _storage = StorageClient.open()
        _storage.create_all()
    return _storage


@worker_process_shutdown.connect
def _close_task_storage(**kwargs):
    global _storage
    if _storage is not None:
        _storage.close()
        _storage = None


# Import tasks to register them
from . import whoop_tasks  # noqa: E402
from . import daily_summary_tasks  # noqa: E402

__all__ = ["celery_app", "get_task_storage"]
