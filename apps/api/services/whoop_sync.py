"""
Whoop sync orchestration.

Pulls cycles, recovery and sleep for a window, joins them per cycle and writes
one `whoop_daily_metrics` row per user per day. Workouts are cached separately
in `whoop_workouts`. Both writes are single upserts, so re-running a window
replaces rows instead of duplicating them.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select

from core.concurrency import run_concurrently
from core.config import settings
from core.database import StorageClient
from models import CardioSession, WhoopDailyMetrics, WhoopWorkout
from services import whoop_service
from services.repositories import SqlRepository, to_dict
from services.whoop_service import WhoopNotConnectedError
from services.whoop_token_store import WhoopTokenStore

logger = logging.getLogger(__name__)

METRICS_CONFLICT_KEY = ("user_id", "date")
WORKOUTS_CONFLICT_KEY = ("user_id", "whoop_workout_id")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamp from the API as an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def ms_to_minutes(ms: float) -> int:
    return int(round(ms / 60000))


def sleep_summary(sleep: Optional[Dict[str, Any]]) -> Dict[str, Optional[int]]:
    """
    Duration and score for a sleep record.

    Duration counts light + slow wave + REM only; awake and no-data time are
    excluded. Both are None when the sleep is missing or unscored.
    """
    score = (sleep or {}).get("score")
    if not score:
        return {"sleep_duration_minutes": None, "sleep_score": None}

    stages = score.get("stage_summary") or {}
    asleep_ms = (
        (stages.get("total_light_sleep_time_milli") or 0)
        + (stages.get("total_slow_wave_sleep_time_milli") or 0)
        + (stages.get("total_rem_sleep_time_milli") or 0)
    )
    return {
        "sleep_duration_minutes": ms_to_minutes(asleep_ms),
        "sleep_score": int(round(score.get("sleep_performance_percentage") or 0)),
    }


def build_daily_metrics_row(
    user_id: UUID,
    cycle: Dict[str, Any],
    recovery: Optional[Dict[str, Any]],
    sleep: Optional[Dict[str, Any]],
    updated_at: datetime,
) -> Dict[str, Any]:
    """Join one cycle with its recovery and sleep. Missing parts become nulls."""
    cycle_score = cycle.get("score") or {}
    recovery_score = (recovery or {}).get("score") or {}

    row = {
        "user_id": user_id,
        "date": parse_timestamp(cycle["start"]).date(),
        "cycle_id": cycle.get("id"),
        "recovery_score": recovery_score.get("recovery_score"),
        "hrv_rmssd": recovery_score.get("hrv_rmssd_milli"),
        "resting_heart_rate": recovery_score.get("resting_heart_rate"),
        "spo2_percentage": recovery_score.get("spo2_percentage"),
        "skin_temp_celsius": recovery_score.get("skin_temp_celsius"),
        "sleep_id": str(sleep["id"]) if sleep and sleep.get("id") is not None else None,
        "strain_score": cycle_score.get("strain"),
        "kilojoules": cycle_score.get("kilojoule"),
        "avg_heart_rate": cycle_score.get("average_heart_rate"),
        "max_heart_rate": cycle_score.get("max_heart_rate"),
        "raw_data": {"cycle": cycle, "recovery": recovery, "sleep": sleep},
        "updated_at": updated_at,
    }
    row.update(sleep_summary(sleep))
    return row


def build_workout_row(user_id: UUID, workout: Dict[str, Any], synced_at: datetime) -> Dict[str, Any]:
    score = workout.get("score") or {}
    return {
        "user_id": user_id,
        "whoop_workout_id": str(workout["id"]),
        "start_time": parse_timestamp(workout.get("start")),
        "end_time": parse_timestamp(workout.get("end")),
        "sport_id": workout.get("sport_id"),
        "strain": score.get("strain"),
        "avg_hr": score.get("average_heart_rate"),
        "max_hr": score.get("max_heart_rate"),
        "raw_data": workout,
        "synced_at": synced_at,
    }


def _require_token(storage: StorageClient, user_id: UUID) -> str:
    token = whoop_service.get_valid_access_token(WhoopTokenStore(storage), user_id)
    if not token:
        raise WhoopNotConnectedError(user_id)
    return token


def sync_user_metrics(
    storage: StorageClient,
    user_id: UUID,
    start_date: date,
    end_date: date,
) -> Dict[str, int]:
    """
    Sync daily metrics for [start_date, end_date].

    Raises WhoopNotConnectedError when there is no usable token and
    WhoopAPIError when any of the three collections fails.
    """
    token = _require_token(storage, user_id)

    fetched = run_concurrently({
        "cycles": lambda: whoop_service.fetch_cycles(token, start_date, end_date),
        "recoveries": lambda: whoop_service.fetch_recoveries(token, start_date, end_date),
        "sleeps": lambda: whoop_service.fetch_sleep(token, start_date, end_date),
    })
    cycles = fetched["cycles"]
    if not cycles:
        logger.info(f"No Whoop cycles for user {user_id} in {start_date}..{end_date}")
        return {"synced_count": 0}

    recovery_by_cycle_id = {r["cycle_id"]: r for r in fetched["recoveries"] if r.get("cycle_id") is not None}
    sleep_by_cycle_id = {s["cycle_id"]: s for s in fetched["sleeps"] if s.get("cycle_id")}

    now = _utcnow()
    # Keyed by date: two cycles starting on the same UTC day collapse to the later one.
    rows_by_date: Dict[date, Dict[str, Any]] = {}
    for cycle in cycles:
        if not cycle.get("start"):
            continue
        row = build_daily_metrics_row(
            user_id,
            cycle,
            recovery_by_cycle_id.get(cycle.get("id")),
            sleep_by_cycle_id.get(cycle.get("id")),
            now,
        )
        if row["date"] in rows_by_date:
            logger.debug(f"Cycle {cycle.get('id')} replaces an earlier cycle on {row['date']}")
        rows_by_date[row["date"]] = row

    if not rows_by_date:
        return {"synced_count": 0}

    synced = SqlRepository(storage, WhoopDailyMetrics).upsert_many(
        rows_by_date.values(), METRICS_CONFLICT_KEY
    )
    logger.info(f"Synced {synced} Whoop day(s) for user {user_id}")
    return {"synced_count": synced}


def sync_user_workouts(
    storage: StorageClient,
    user_id: UUID,
    start_date: date,
    end_date: date,
) -> Dict[str, int]:
    token = _require_token(storage, user_id)

    workouts = whoop_service.fetch_workouts(token, start_date, end_date)
    if not workouts:
        return {"synced_count": 0}

    now = _utcnow()
    rows_by_id = {}
    for workout in workouts:
        row = build_workout_row(user_id, workout, now)
        rows_by_id[row["whoop_workout_id"]] = row

    synced = SqlRepository(storage, WhoopWorkout).upsert_many(rows_by_id.values(), WORKOUTS_CONFLICT_KEY)
    logger.info(f"Synced {synced} Whoop workout(s) for user {user_id}")
    return {"synced_count": synced}


def recent_window(days: int, today: Optional[date] = None) -> Dict[str, date]:
    """[today - days, today] in UTC."""
    end = today or _utcnow().date()
    return {"start": end - timedelta(days=int(days)), "end": end}


def sync_recent_metrics(storage: StorageClient, user_id: UUID, days: Optional[int] = None) -> Dict[str, Any]:
    window = recent_window(days if days is not None else settings.WHOOP_METRICS_SYNC_DAYS)
    result = sync_user_metrics(storage, user_id, window["start"], window["end"])
    return {
        "synced_count": result["synced_count"],
        "date_range": {"start": window["start"].isoformat(), "end": window["end"].isoformat()},
    }


def sync_recent_workouts(storage: StorageClient, user_id: UUID, days: Optional[int] = None) -> Dict[str, Any]:
    window = recent_window(days if days is not None else settings.WHOOP_WORKOUTS_SYNC_DAYS)
    result = sync_user_workouts(storage, user_id, window["start"], window["end"])
    return {
        "synced_count": result["synced_count"],
        "date_range": {"start": window["start"].isoformat(), "end": window["end"].isoformat()},
    }


def sync_all_users(storage: StorageClient, days: Optional[int] = None) -> Dict[str, Any]:
    """
    Sync recent metrics for every connected user, one at a time.

    A failing user is recorded in `results` and does not stop the batch;
    `total_records` counts successful users only.
    """
    days = days if days is not None else settings.WHOOP_CRON_SYNC_DAYS
    window = recent_window(days)
    user_ids = WhoopTokenStore(storage).list_connected_user_ids()

    if not user_ids:
        return {
            "success": True,
            "message": "No users with Whoop connected",
            "synced_users": 0,
            "total_users": 0,
            "total_records": 0,
            "results": [],
            "timestamp": _utcnow().isoformat(),
        }

    results: List[Dict[str, Any]] = []
    for user_id in user_ids:
        try:
            outcome = sync_user_metrics(storage, user_id, window["start"], window["end"])
            results.append({"user_id": str(user_id), "success": True, "synced": outcome["synced_count"]})
        except Exception as e:
            logger.error(f"Whoop sync failed for user {user_id}: {e}", exc_info=True)
            results.append({"user_id": str(user_id), "success": False, "error": str(e)})

    synced_users = sum(1 for r in results if r["success"])
    total_records = sum(r["synced"] for r in results if r["success"])
    logger.info(f"Whoop batch sync: {synced_users}/{len(user_ids)} users, {total_records} records")

    return {
        "success": True,
        "message": f"Whoop sync completed for {synced_users}/{len(user_ids)} users",
        "synced_users": synced_users,
        "total_users": len(user_ids),
        "total_records": total_records,
        "results": results,
        "timestamp": _utcnow().isoformat(),
    }


# --- Cached reads ---

def get_cached_metrics(storage: StorageClient, user_id: UUID, day: date) -> Optional[Dict[str, Any]]:
    row = SqlRepository(storage, WhoopDailyMetrics).get({"user_id": user_id, "date": day})
    return to_dict(row) if row is not None else None


def list_cached_workouts(
    storage: StorageClient,
    user_id: UUID,
    day: Optional[date] = None,
    unlinked_only: bool = False,
) -> List[Dict[str, Any]]:
    """
    Cached workouts, newest first.

    `day` keeps workouts starting on that UTC day. `unlinked_only` drops
    workouts already attached to a cardio session.
    """
    stmt = select(WhoopWorkout).where(WhoopWorkout.user_id == user_id)
    if day is not None:
        day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        stmt = stmt.where(
            WhoopWorkout.start_time >= day_start,
            WhoopWorkout.start_time < day_start + timedelta(days=1),
        )
    stmt = stmt.order_by(WhoopWorkout.start_time.desc())

    with storage.session() as db:
        workouts = list(db.execute(stmt).scalars().all())
        if unlinked_only and workouts:
            linked = set(
                db.execute(
                    select(CardioSession.whoop_workout_id).where(
                        CardioSession.user_id == user_id,
                        CardioSession.whoop_workout_id.in_([w.whoop_workout_id for w in workouts]),
                    )
                ).scalars().all()
            )
            workouts = [w for w in workouts if w.whoop_workout_id not in linked]

    return [to_dict(w) for w in workouts]
