from sqlalchemy import Column, Integer, BigInteger, Boolean, Float, Date, DateTime, Enum, ForeignKey, JSON, Text, String, Index, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import enum
import uuid

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Supplement(str, enum.Enum):
    """Supplements a user can log. The value is the key used in summaries."""
    CREATINE = "creatine"
    FISH_OIL = "fish_oil"
    D3 = "d3"
    K2 = "k2"
    VITAMIN_C = "vitamin_c"
    VITAMIN_A = "vitamin_a"
    VITAMIN_E = "vitamin_e"
    VITAMIN_B12 = "vitamin_b12"
    VITAMIN_B_COMPLEX = "vitamin_b_complex"
    FOLATE = "folate"
    BIOTIN = "biotin"
    ZINC = "zinc"
    MAGNESIUM = "magnesium"
    MELATONIN = "melatonin"
    CAFFEINE = "caffeine"


# --- WHOOP INTEGRATION ---

class WhoopToken(Base):
    """
    OAuth credential for one user's Whoop account.

    Tokens are stored encrypted (see services.token_encryption). The row is
    replaced on every refresh and deleted when a refresh fails.
    """
    __tablename__ = "whoop_tokens"

    user_id = Column(Uuid, primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    whoop_user_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WhoopDailyMetrics(Base):
    """One row per user per calendar day, joined from cycle + recovery + sleep."""
    __tablename__ = "whoop_daily_metrics"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    cycle_id = Column(BigInteger, nullable=True)

    # Recovery
    recovery_score = Column(Float, nullable=True)
    hrv_rmssd = Column(Float, nullable=True)  # milliseconds
    resting_heart_rate = Column(Float, nullable=True)
    spo2_percentage = Column(Float, nullable=True)
    skin_temp_celsius = Column(Float, nullable=True)

    # Sleep
    sleep_id = Column(String, nullable=True)
    sleep_score = Column(Integer, nullable=True)
    sleep_duration_minutes = Column(Integer, nullable=True)  # light + SWS + REM

    # Cycle
    strain_score = Column(Float, nullable=True)
    kilojoules = Column(Float, nullable=True)
    avg_heart_rate = Column(Integer, nullable=True)
    max_heart_rate = Column(Integer, nullable=True)

    raw_data = Column(JSONType, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_whoop_daily_metrics_user_date"),
    )


class WhoopWorkout(Base):
    __tablename__ = "whoop_workouts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    whoop_workout_id = Column(String, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    sport_id = Column(Integer, nullable=True)
    strain = Column(Float, nullable=True)
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    raw_data = Column(JSONType, nullable=True)
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "whoop_workout_id", name="uq_whoop_workouts_user_workout"),
        Index("ix_whoop_workouts_user_start", "user_id", "start_time"),
    )


# --- DAILY SUMMARY ---

class DailySummary(Base):
    """Denormalized per-day document; rebuilt from the source tables on every sync."""
    __tablename__ = "daily_summaries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    data = Column(JSONType, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_summaries_user_date"),
    )


# --- NUTRITION ---

class Food(Base):
    """Reference food. Nutrient values are per serving."""
    __tablename__ = "foods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    serving_size = Column(Text, nullable=True)  # e.g. "1 cup (240g)"
    calories = Column(Float, nullable=False, default=0)
    protein = Column(Float, nullable=False, default=0)
    total_fat = Column(Float, nullable=False, default=0)
    total_carbohydrates = Column(Float, nullable=False, default=0)

    # Optional micronutrients: null means "not known", not zero
    saturated_fat = Column(Float, nullable=True)
    fiber = Column(Float, nullable=True)
    sugar = Column(Float, nullable=True)
    sodium = Column(Float, nullable=True)  # mg
    vitamin_a = Column(Float, nullable=True)
    vitamin_c = Column(Float, nullable=True)
    vitamin_d = Column(Float, nullable=True)
    calcium = Column(Float, nullable=True)
    iron = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Meal(Base):
    __tablename__ = "meals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    name = Column(Text, nullable=False)
    # 12-hour clock as entered; ordering within a day uses (time_hour, time_minute)
    time_hour = Column(Integer, nullable=False, default=12)
    time_minute = Column(Integer, nullable=False, default=0)
    is_pm = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_meals_user_date", "user_id", "date"),
    )


class FoodLog(Base):
    __tablename__ = "food_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    food_id = Column(Uuid, ForeignKey("foods.id"), nullable=False)
    meal_id = Column(Uuid, ForeignKey("meals.id", ondelete="SET NULL"), nullable=True)
    servings = Column(Float, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_food_logs_user_date", "user_id", "date"),
    )


class SupplementLog(Base):
    __tablename__ = "supplement_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    supplement = Column(
        Enum(
            Supplement,
            name="supplement",
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    amount = Column(Float, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", "supplement", name="uq_supplement_logs_user_date_supplement"),
    )


# --- TRAINING ---

class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=True)  # see services.exercise_categories
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ExerciseLog(Base):
    __tablename__ = "exercise_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    exercise_id = Column(Uuid, ForeignKey("exercises.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_exercise_logs_user_date", "user_id", "date"),
    )


class ExerciseSet(Base):
    __tablename__ = "exercise_sets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    log_id = Column(Uuid, ForeignKey("exercise_logs.id", ondelete="CASCADE"), nullable=False)
    set_number = Column(Integer, nullable=False)
    is_warmup = Column(Boolean, nullable=False, default=False)
    reps = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)  # lbs
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_exercise_sets_log_id", "log_id"),
    )


class CardioSession(Base):
    """Treadmill session. Optionally linked to the Whoop workout it was recorded as."""
    __tablename__ = "cardio_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    date = Column(Date, nullable=False)
    duration_minutes = Column(Float, nullable=False, default=0)
    incline = Column(Float, nullable=True)  # percent
    speed = Column(Float, nullable=True)  # mph
    notes = Column(Text, nullable=True)
    whoop_workout_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_cardio_sessions_user_date", "user_id", "date"),
    )
