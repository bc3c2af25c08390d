"""
Tests for the daily summary aggregator.

Each test seeds the source tables for one user/date and checks the
denormalized document built (and stored) from them.
"""
from datetime import date, datetime, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from models import (
    CardioSession,
    DailySummary,
    Exercise,
    ExerciseLog,
    ExerciseSet,
    Food,
    FoodLog,
    Meal,
    Supplement,
    SupplementLog,
    WhoopDailyMetrics,
)
from services.daily_summary import (
    aggregate_daily_data,
    format_meal_time,
    get_daily_summary,
    sync_all_users_daily_summary,
    sync_daily_summaries,
    sync_daily_summary,
)
from services.supplements import SUPPLEMENT_KEYS

DAY = date(2024, 2, 14)


def _ts(minute):
    return datetime(2024, 2, 14, 12, minute, tzinfo=timezone.utc)


def _summary_rows(storage):
    with storage.session() as db:
        return db.query(DailySummary).all()


class TestNutrition:
    def test_totals_fold_all_food_logs_regardless_of_meal(self, storage, user_id, add_rows):
        food_a = Food(id=uuid4(), name="Oats", calories=100, protein=5, total_fat=2, total_carbohydrates=15)
        food_b = Food(id=uuid4(), name="Banana", calories=50, protein=1, total_fat=0, total_carbohydrates=12)
        add_rows(food_a, food_b)
        add_rows(
            FoodLog(user_id=user_id, date=DAY, food_id=food_a.id, servings=2),
            FoodLog(user_id=user_id, date=DAY, food_id=food_b.id, servings=1),
        )

        data = aggregate_daily_data(storage, DAY, user_id)

        assert data["totals"]["calories"] == 250
        assert data["totals"]["protein"] == 11
        assert data["totals"]["fat"] == 4
        assert data["totals"]["carbs"] == 42
        assert data["meals"] == []

    def test_micronutrient_null_vs_zero(self, storage, user_id, add_rows):
        food = Food(id=uuid4(), name="Salt-free crackers", calories=80, sodium=0, fiber=2)
        add_rows(food)
        add_rows(FoodLog(user_id=user_id, date=DAY, food_id=food.id, servings=3))

        totals = aggregate_daily_data(storage, DAY, user_id)["totals"]

        assert totals["sodium"] == 0
        assert totals["fiber"] == 6
        # No logged food supplied these
        assert totals["iron"] is None
        assert totals["vitamin_c"] is None

    def test_empty_day(self, storage, user_id):
        data = aggregate_daily_data(storage, DAY, user_id)
        assert data["date"] == "2024-02-14"
        assert data["totals"]["calories"] == 0
        assert data["meals"] == []
        assert data["workout"]["exercises"] == []
        assert data["workout"]["total_cardio_minutes"] == 0
        assert data["whoop"] is None

    def test_other_days_and_users_are_ignored(self, storage, user_id, add_rows):
        food = Food(id=uuid4(), name="Rice", calories=200)
        add_rows(food)
        add_rows(
            FoodLog(user_id=user_id, date=date(2024, 2, 13), food_id=food.id, servings=1),
            FoodLog(user_id=uuid4(), date=DAY, food_id=food.id, servings=1),
        )
        assert aggregate_daily_data(storage, DAY, user_id)["totals"]["calories"] == 0


class TestMeals:
    def test_meals_ordered_by_time_with_scaled_items(self, storage, user_id, add_rows):
        eggs = Food(id=uuid4(), name="Eggs", serving_size="2 large", calories=140, protein=12,
                    total_fat=10, total_carbohydrates=1)
        add_rows(eggs)
        lunch = Meal(id=uuid4(), user_id=user_id, date=DAY, name="Lunch", time_hour=11, time_minute=45)
        breakfast = Meal(id=uuid4(), user_id=user_id, date=DAY, name="Breakfast", time_hour=8, time_minute=5)
        add_rows(lunch, breakfast)
        add_rows(FoodLog(user_id=user_id, date=DAY, food_id=eggs.id, meal_id=breakfast.id, servings=1.5))

        meals = aggregate_daily_data(storage, DAY, user_id)["meals"]

        assert [m["name"] for m in meals] == ["Breakfast", "Lunch"]
        assert meals[0]["time"] == "8:05 AM"
        item = meals[0]["foods"][0]
        assert item["name"] == "Eggs"
        assert item["serving_size"] == "2 large"
        assert item["calories"] == 210
        assert item["protein"] == 18
        assert meals[0]["meal_totals"]["calories"] == 210
        assert meals[1]["foods"] == []
        assert meals[1]["meal_totals"]["calories"] == 0

    def test_unknown_food_renders_as_unknown(self, storage, user_id, add_rows):
        real = Food(id=uuid4(), name="Apple", calories=95)
        add_rows(real)
        meal = Meal(id=uuid4(), user_id=user_id, date=DAY, name="Snack", time_hour=3, time_minute=0, is_pm=True)
        log = FoodLog(user_id=user_id, date=DAY, food_id=real.id, meal_id=meal.id, servings=1)
        add_rows(meal, log)

        # Point the log at a food missing from the reference table.
        with storage.session() as db:
            db.query(FoodLog).filter(FoodLog.id == log.id).update({"food_id": uuid4()})

        data = aggregate_daily_data(storage, DAY, user_id)
        item = data["meals"][0]["foods"][0]
        assert item["name"] == "Unknown"
        assert item["calories"] == 0
        assert data["totals"]["calories"] == 0

    @pytest.mark.parametrize("hour, minute, is_pm, expected", [
        (8, 30, False, "8:30 AM"),
        (12, 0, True, "12:00 PM"),
        (0, 15, False, "12:15 AM"),
        (7, 5, True, "7:05 PM"),
    ])
    def test_format_meal_time(self, hour, minute, is_pm, expected):
        assert format_meal_time(hour, minute, is_pm) == expected


class TestSupplements:
    def test_every_supplement_present_defaulting_to_zero(self, storage, user_id, add_rows):
        add_rows(
            SupplementLog(user_id=user_id, date=DAY, supplement=Supplement.CREATINE, amount=5),
            SupplementLog(user_id=user_id, date=DAY, supplement=Supplement.MAGNESIUM, amount=400),
        )

        supplements = aggregate_daily_data(storage, DAY, user_id)["supplements"]

        assert set(supplements) == set(SUPPLEMENT_KEYS)
        assert len(supplements) == 15
        assert supplements["creatine"] == 5
        assert supplements["magnesium"] == 400
        assert supplements["fish_oil"] == 0
        assert supplements["caffeine"] == 0


class TestWorkout:
    def test_exercise_sets_and_cardio(self, storage, user_id, add_rows):
        bench = Exercise(id=uuid4(), name="Bench Press", category="chest")
        mystery = Exercise(id=uuid4(), name="Sled Push", category=None)
        add_rows(bench, mystery)
        bench_log = ExerciseLog(id=uuid4(), user_id=user_id, date=DAY, exercise_id=bench.id, created_at=_ts(0))
        sled_log = ExerciseLog(id=uuid4(), user_id=user_id, date=DAY, exercise_id=mystery.id, created_at=_ts(1))
        add_rows(bench_log, sled_log)
        add_rows(
            ExerciseSet(log_id=bench_log.id, set_number=2, reps=8, weight=185),
            ExerciseSet(log_id=bench_log.id, set_number=1, reps=10, weight=135, is_warmup=True),
            ExerciseSet(log_id=bench_log.id, set_number=3, reps=6, weight=205),
            CardioSession(user_id=user_id, date=DAY, duration_minutes=20, incline=12, speed=3.0, created_at=_ts(0)),
            CardioSession(user_id=user_id, date=DAY, duration_minutes=15.5, created_at=_ts(1)),
        )

        workout = aggregate_daily_data(storage, DAY, user_id)["workout"]

        assert workout["total_exercises"] == 2
        assert workout["total_sets"] == 3
        bench_summary, sled_summary = workout["exercises"]
        assert bench_summary["name"] == "Bench Press"
        assert bench_summary["category"] == "chest"
        assert bench_summary["category_label"] == "Chest"
        assert [s["set_number"] for s in bench_summary["sets"]] == [1, 2, 3]
        assert bench_summary["sets"][0]["is_warmup"] is True
        assert bench_summary["total_reps"] == 24
        assert bench_summary["max_weight"] == 205

        assert sled_summary["category"] == "unknown"
        assert sled_summary["category_label"] == "Unknown"
        assert sled_summary["sets"] == []
        assert sled_summary["max_weight"] is None

        assert [c["duration_minutes"] for c in workout["cardio"]] == [20, 15.5]
        assert workout["cardio"][0]["incline"] == 12
        assert workout["total_cardio_minutes"] == 35.5


class TestWhoopSection:
    def test_whoop_metrics_attached(self, storage, user_id, add_rows):
        add_rows(WhoopDailyMetrics(
            user_id=user_id, date=DAY, cycle_id=9, recovery_score=71.0,
            hrv_rmssd=48.5, sleep_duration_minutes=420, strain_score=11.2,
        ))

        whoop = aggregate_daily_data(storage, DAY, user_id)["whoop"]

        assert whoop["cycle_id"] == 9
        assert whoop["recovery_score"] == 71.0
        assert whoop["sleep_duration_minutes"] == 420
        assert whoop["strain_score"] == 11.2
        assert whoop["sleep_score"] is None
        assert "raw_data" not in whoop


class TestSync:
    def test_sync_persists_and_get_reads_back(self, storage, user_id, add_rows):
        food = Food(id=uuid4(), name="Toast", calories=80)
        add_rows(food)
        add_rows(FoodLog(user_id=user_id, date=DAY, food_id=food.id, servings=1))

        data = sync_daily_summary(storage, DAY, user_id)
        stored = get_daily_summary(storage, DAY, user_id)

        assert stored["date"] == "2024-02-14"
        assert stored["user_id"] == str(user_id)
        assert stored["data"] == data
        assert stored["data"]["totals"]["calories"] == 80

    def test_get_missing_summary_is_none(self, storage, user_id):
        assert get_daily_summary(storage, DAY, user_id) is None

    def test_resync_overwrites(self, storage, user_id, add_rows):
        food = Food(id=uuid4(), name="Toast", calories=80)
        add_rows(food)
        add_rows(FoodLog(user_id=user_id, date=DAY, food_id=food.id, servings=1))
        sync_daily_summary(storage, DAY, user_id)

        add_rows(FoodLog(user_id=user_id, date=DAY, food_id=food.id, servings=2))
        sync_daily_summary(storage, DAY, user_id)

        rows = _summary_rows(storage)
        assert len(rows) == 1
        assert rows[0].data["totals"]["calories"] == 240

    def test_failed_read_writes_nothing(self, storage, user_id):
        with patch("services.daily_summary.get_supplement_log", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError, match="db down"):
                sync_daily_summary(storage, DAY, user_id)

        assert _summary_rows(storage) == []

    def test_range_syncs_each_day(self, storage, user_id):
        summaries = sync_daily_summaries(storage, date(2024, 2, 10), date(2024, 2, 12), user_id)

        assert [s["date"] for s in summaries] == ["2024-02-10", "2024-02-11", "2024-02-12"]
        assert len(_summary_rows(storage)) == 3

    def test_range_rejects_reversed_dates(self, storage, user_id):
        with pytest.raises(ValueError):
            sync_daily_summaries(storage, date(2024, 2, 12), date(2024, 2, 10), user_id)


class TestSyncAllUsers:
    def test_no_users(self, storage):
        result = sync_all_users_daily_summary(storage, DAY)
        assert result["total"] == 0
        assert result["results"] == []

    def test_failure_for_one_user_is_isolated(self, storage, add_rows):
        ok_user, bad_user = uuid4(), uuid4()
        add_rows(
            Meal(user_id=ok_user, date=DAY, name="Dinner", time_hour=7, is_pm=True),
            Meal(user_id=bad_user, date=DAY, name="Dinner", time_hour=7, is_pm=True),
        )

        import services.daily_summary as daily_summary

        real = daily_summary.aggregate_daily_data

        def _aggregate(storage_, day, user_id):
            if user_id == bad_user:
                raise RuntimeError("boom")
            return real(storage_, day, user_id)

        with patch.object(daily_summary, "aggregate_daily_data", side_effect=_aggregate):
            result = sync_all_users_daily_summary(storage, DAY)

        assert result["success"] is True
        assert result["date"] == "2024-02-14"
        assert result["total"] == 2
        assert result["synced"] == 1
        by_user = {r["user_id"]: r for r in result["results"]}
        assert by_user[str(ok_user)]["success"] is True
        assert by_user[str(bad_user)] == {"user_id": str(bad_user), "success": False, "error": "boom"}
        assert get_daily_summary(storage, DAY, ok_user) is not None
        assert get_daily_summary(storage, DAY, bad_user) is None
