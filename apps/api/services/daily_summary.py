"""
Daily Summary Aggregator

Folds every per-day source table for one user into a single denormalized
document (nutrition, meals, supplements, training, Whoop metrics) and stores
it in `daily_summaries`, one row per user per date.

The document is a pure projection: re-running the sync for a date replaces it.
All reads for a day are issued concurrently and joined fail-fast; if any read
fails nothing is written.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from core.concurrency import run_concurrently
from core.database import StorageClient
from services.exercise_categories import resolve_category
from services.repositories import Repositories
from services.supplements import SUPPLEMENT_KEYS, get_supplement_log

logger = logging.getLogger(__name__)

SUMMARY_CONFLICT_KEY = ("user_id", "date")

MACRO_FIELDS = {
    "calories": "calories",
    "protein": "protein",
    "fat": "total_fat",
    "carbs": "total_carbohydrates",
}

# Optional nutrients: null until at least one logged food supplies a value.
MICRONUTRIENT_FIELDS = (
    "fiber",
    "sugar",
    "sodium",
    "saturated_fat",
    "vitamin_a",
    "vitamin_c",
    "vitamin_d",
    "calcium",
    "iron",
)

WHOOP_SUMMARY_FIELDS = (
    "cycle_id",
    "recovery_score",
    "hrv_rmssd",
    "resting_heart_rate",
    "spo2_percentage",
    "skin_temp_celsius",
    "sleep_id",
    "sleep_score",
    "sleep_duration_minutes",
    "strain_score",
    "kilojoules",
    "avg_heart_rate",
    "max_heart_rate",
)


def format_meal_time(hour: int, minute: int, is_pm: bool) -> str:
    """12-hour display time, e.g. "8:30 AM". Hour 0 displays as 12."""
    display_hour = 12 if hour == 0 else hour - 12 if hour > 12 else hour
    return f"{display_hour}:{minute:02d} {'PM' if is_pm else 'AM'}"


def _id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _food_item(log, food) -> Dict[str, Any]:
    servings = log.servings or 0
    item = {
        "food_id": _id(log.food_id),
        "name": food.name if food else "Unknown",
        "serving_size": (food.serving_size if food else None) or "",
        "servings": servings,
    }
    for key, column in MACRO_FIELDS.items():
        base = getattr(food, column, None) if food else None
        item[key] = (base or 0) * servings
    return item


def build_totals(food_logs, foods_by_id) -> Dict[str, Any]:
    totals: Dict[str, Any] = {key: 0 for key in MACRO_FIELDS}
    totals.update({key: None for key in MICRONUTRIENT_FIELDS})

    for log in food_logs:
        food = foods_by_id.get(log.food_id)
        if food is None:
            continue
        servings = log.servings or 0
        for key, column in MACRO_FIELDS.items():
            totals[key] += (getattr(food, column) or 0) * servings
        for key in MICRONUTRIENT_FIELDS:
            value = getattr(food, key)
            if value is not None:
                totals[key] = (totals[key] or 0) + value * servings
    return totals


def build_meals(meals, food_logs, foods_by_id) -> List[Dict[str, Any]]:
    logs_by_meal: Dict[Any, list] = {}
    for log in food_logs:
        if log.meal_id is not None:
            logs_by_meal.setdefault(log.meal_id, []).append(log)

    summaries = []
    for meal in meals:
        foods = [_food_item(log, foods_by_id.get(log.food_id)) for log in logs_by_meal.get(meal.id, [])]
        summaries.append({
            "meal_id": _id(meal.id),
            "name": meal.name,
            "time": format_meal_time(meal.time_hour, meal.time_minute, meal.is_pm),
            "time_hour": meal.time_hour,
            "time_minute": meal.time_minute,
            "is_pm": meal.is_pm,
            "foods": foods,
            "meal_totals": {key: sum(f[key] for f in foods) for key in MACRO_FIELDS},
        })
    return summaries


def build_exercise(log, exercise, sets) -> Dict[str, Any]:
    ordered = sorted(sets, key=lambda s: s.set_number)
    weights = [s.weight for s in ordered if s.weight is not None]
    category, label = resolve_category(exercise.category if exercise else None)
    return {
        "exercise_id": _id(log.exercise_id),
        "name": exercise.name if exercise else "Unknown",
        "category": category,
        "category_label": label,
        "sets": [
            {
                "set_number": s.set_number,
                "is_warmup": s.is_warmup,
                "reps": s.reps,
                "weight": s.weight,
                "notes": s.notes,
            }
            for s in ordered
        ],
        "total_sets": len(ordered),
        "total_reps": sum(s.reps or 0 for s in ordered),
        "max_weight": max(weights) if weights else None,
    }


def build_workout(exercise_logs, exercise_sets, exercises_by_id, cardio_sessions) -> Dict[str, Any]:
    sets_by_log: Dict[Any, list] = {}
    for s in exercise_sets:
        sets_by_log.setdefault(s.log_id, []).append(s)

    exercises = [
        build_exercise(log, exercises_by_id.get(log.exercise_id), sets_by_log.get(log.id, []))
        for log in exercise_logs
    ]
    cardio = [
        {
            "session_id": _id(c.id),
            "duration_minutes": c.duration_minutes,
            "incline": c.incline,
            "speed": c.speed,
            "notes": c.notes,
        }
        for c in cardio_sessions
    ]
    return {
        "exercises": exercises,
        "cardio": cardio,
        "total_exercises": len(exercises),
        "total_sets": sum(e["total_sets"] for e in exercises),
        "total_cardio_minutes": sum(c["duration_minutes"] or 0 for c in cardio),
    }


def build_whoop(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {field: getattr(row, field) for field in WHOOP_SUMMARY_FIELDS}


def aggregate_daily_data(storage: StorageClient, day: date, user_id: UUID) -> Dict[str, Any]:
    """Read every source table for (user, day) and fold them into one summary document."""
    repos = Repositories(storage)
    scope = {"user_id": user_id, "date": day}

    reads = {
        "meals": lambda: repos.meals.find(scope, order_by=("time_hour", "time_minute")),
        "food_logs": lambda: repos.food_logs.find(scope, order_by=("created_at",)),
        "foods": lambda: repos.foods.find(),
        "exercise_logs": lambda: repos.exercise_logs.find(scope, order_by=("created_at",)),
        "exercises": lambda: repos.exercises.find(),
        "cardio": lambda: repos.cardio_sessions.find(scope, order_by=("created_at",)),
        "whoop": lambda: repos.whoop_daily_metrics.get(scope),
    }
    for key in SUPPLEMENT_KEYS:
        reads[f"supplement:{key}"] = lambda key=key: get_supplement_log(storage, key, day, user_id)

    data = run_concurrently(reads)

    exercise_logs = data["exercise_logs"]
    exercise_sets = (
        repos.exercise_sets.find({"log_id": [log.id for log in exercise_logs]})
        if exercise_logs else []
    )

    foods_by_id = {f.id: f for f in data["foods"]}
    exercises_by_id = {e.id: e for e in data["exercises"]}

    return {
        "date": day.isoformat(),
        "totals": build_totals(data["food_logs"], foods_by_id),
        "meals": build_meals(data["meals"], data["food_logs"], foods_by_id),
        "supplements": {key: data[f"supplement:{key}"] or 0 for key in SUPPLEMENT_KEYS},
        "workout": build_workout(exercise_logs, exercise_sets, exercises_by_id, data["cardio"]),
        "whoop": build_whoop(data["whoop"]),
    }


def save_daily_summary(storage: StorageClient, day: date, user_id: UUID, data: Dict[str, Any]) -> None:
    Repositories(storage).daily_summaries.upsert_many(
        [{
            "user_id": user_id,
            "date": day,
            "data": data,
            "updated_at": datetime.now(timezone.utc),
        }],
        SUMMARY_CONFLICT_KEY,
    )


def sync_daily_summary(storage: StorageClient, day: date, user_id: UUID) -> Dict[str, Any]:
    """Aggregate and persist the summary for one day. Returns the document."""
    data = aggregate_daily_data(storage, day, user_id)
    save_daily_summary(storage, day, user_id, data)
    logger.info(f"Daily summary synced for user {user_id} on {day.isoformat()}")
    return data


def sync_daily_summaries(
    storage: StorageClient,
    start_date: date,
    end_date: date,
    user_id: UUID,
) -> List[Dict[str, Any]]:
    """Sync every day in [start_date, end_date]."""
    if start_date > end_date:
        raise ValueError("start_date must be on or before end_date")

    summaries = []
    day = start_date
    while day <= end_date:
        summaries.append(sync_daily_summary(storage, day, user_id))
        day += timedelta(days=1)
    return summaries


def sync_all_users_daily_summary(storage: StorageClient, day: date) -> Dict[str, Any]:
    """
    Sync `day` for every user who has logged a meal. One user's failure is
    recorded and does not stop the others.
    """
    user_ids = Repositories(storage).meals.distinct("user_id")
    if not user_ids:
        return {
            "success": True,
            "date": day.isoformat(),
            "message": "No users to sync",
            "synced": 0,
            "total": 0,
            "results": [],
        }

    results = []
    for user_id in user_ids:
        try:
            sync_daily_summary(storage, day, user_id)
            results.append({"user_id": str(user_id), "success": True})
        except Exception as e:
            logger.error(f"Daily summary sync failed for user {user_id}: {e}", exc_info=True)
            results.append({"user_id": str(user_id), "success": False, "error": str(e)})

    synced = sum(1 for r in results if r["success"])
    return {
        "success": True,
        "date": day.isoformat(),
        "message": f"Daily summary synced for {synced}/{len(user_ids)} users",
        "synced": synced,
        "total": len(user_ids),
        "results": results,
    }


def get_daily_summary(storage: StorageClient, day: date, user_id: UUID) -> Optional[Dict[str, Any]]:
    """The stored summary row as a dict, or None if the day was never synced."""
    row = Repositories(storage).daily_summaries.get({"user_id": user_id, "date": day})
    if row is None:
        return None
    return {
        "user_id": str(row.user_id),
        "date": row.date.isoformat(),
        "data": row.data,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
