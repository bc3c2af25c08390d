"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Whoop metrics for every connected user; short look-back so late-scored
    # recovery/sleep from the previous day is picked up.
    'whoop-sync-all-users': {
        'task': 'tasks.sync_all_whoop_users',
        'schedule': crontab(minute=0),  # Hourly
    },
    # Nightly daily summary for every user who logs meals - 23:59 UTC
    'daily-summary-all-users': {
        'task': 'tasks.sync_all_daily_summaries',
        'schedule': crontab(hour=23, minute=59),
    },
}
