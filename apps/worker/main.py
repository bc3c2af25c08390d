"""
Celery worker entry point.

    API_PATH=../api celery -A main worker --beat

Tasks live in the API tree (tasks/); importing the app registers them.
"""
import os
import sys

_default_api_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "api")
sys.path.insert(0, os.environ.get("API_PATH", _default_api_path))

from core.logging import setup_logging  # noqa: E402
from tasks import celery_app, get_task_storage  # noqa: E402

setup_logging()


@celery_app.task(name="worker.health_check")
def health_check():
    """Broker round-trip plus a database ping."""
    return {"status": "ok", "database": get_task_storage().check_connection()}
