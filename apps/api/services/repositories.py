"""
Table-level persistence used by the sync and summary services.

Each repository wraps one mapped table and exposes the three writes the
services need (``get``, ``upsert_many``, ``delete_by_key``) plus a plain
filtered read. Upserts are a single ``INSERT ... ON CONFLICT DO UPDATE``
statement in the storage dialect, so re-running a sync replaces rows in place.
"""
from __future__ import annotations

import enum
import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite

from core.database import Base, StorageClient
from models import (
    CardioSession,
    DailySummary,
    Exercise,
    ExerciseLog,
    ExerciseSet,
    Food,
    FoodLog,
    Meal,
    WhoopDailyMetrics,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Never overwritten by an upsert.
_IMMUTABLE_COLUMNS = {"id", "created_at"}


def to_dict(row: Base, exclude: Sequence[str] = ()) -> Dict[str, Any]:
    """JSON-ready column values of a mapped row (UUIDs as str, dates as ISO)."""
    out: Dict[str, Any] = {}
    for column in row.__table__.columns:
        if column.key in exclude:
            continue
        value = getattr(row, column.key)
        if isinstance(value, uuid.UUID):
            value = str(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif isinstance(value, enum.Enum):
            value = value.value
        out[column.key] = value
    return out


class SqlRepository(Generic[ModelT]):
    """Key-addressed access to one table through a StorageClient."""

    def __init__(self, storage: StorageClient, model: Type[ModelT]):
        self.storage = storage
        self.model = model
        self.table = model.__table__

    def _where(self, key: Dict[str, Any]):
        return [self.table.c[name] == value for name, value in key.items()]

    def get(self, key: Dict[str, Any]) -> Optional[ModelT]:
        """Return the row matching every column in `key`, or None."""
        with self.storage.session() as db:
            return db.execute(
                select(self.model).where(*self._where(key))
            ).scalars().first()

    def find(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Sequence[str] = (),
        descending: bool = False,
    ) -> List[ModelT]:
        """
        Rows matching `filters`. A list/tuple/set filter value means IN.
        """
        clauses = []
        for name, value in (filters or {}).items():
            column = self.table.c[name]
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)

        stmt = select(self.model).where(*clauses)
        for name in order_by:
            column = self.table.c[name]
            stmt = stmt.order_by(column.desc() if descending else column.asc())

        with self.storage.session() as db:
            return list(db.execute(stmt).scalars().all())

    def distinct(self, column_name: str) -> List[Any]:
        column = self.table.c[column_name]
        with self.storage.session() as db:
            return list(db.execute(select(column).distinct().order_by(column)).scalars().all())

    def upsert_many(self, rows: Iterable[Dict[str, Any]], conflict_key: Sequence[str]) -> int:
        """
        Insert `rows`, updating in place on `conflict_key` collisions.

        All rows must carry the same columns. Returns the number of rows written.
        """
        rows = [dict(r) for r in rows]
        if not rows:
            return 0

        insert = _INSERT_BY_DIALECT.get(self.storage.dialect_name)
        if insert is None:
            raise NotImplementedError(
                f"upsert not supported for dialect {self.storage.dialect_name!r}"
            )

        if "id" in self.table.c and "id" not in conflict_key:
            for row in rows:
                row.setdefault("id", uuid.uuid4())

        stmt = insert(self.table).values(rows)
        updates = {
            name: stmt.excluded[name]
            for name in rows[0]
            if name not in conflict_key and name not in _IMMUTABLE_COLUMNS
        }
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_key), set_=updates)

        with self.storage.session() as db:
            db.execute(stmt)

        logger.debug(f"Upserted {len(rows)} row(s) into {self.table.name}")
        return len(rows)

    def delete_by_key(self, key: Dict[str, Any]) -> int:
        """Delete rows matching `key`; returns how many were removed."""
        with self.storage.session() as db:
            result = db.execute(delete(self.table).where(*self._where(key)))
            return result.rowcount or 0


class Repositories:
    """One repository per table, sharing a storage handle."""

    def __init__(self, storage: StorageClient):
        self.storage = storage
        self.whoop_daily_metrics = SqlRepository(storage, WhoopDailyMetrics)
        self.daily_summaries = SqlRepository(storage, DailySummary)
        self.foods = SqlRepository(storage, Food)
        self.meals = SqlRepository(storage, Meal)
        self.food_logs = SqlRepository(storage, FoodLog)
        self.exercises = SqlRepository(storage, Exercise)
        self.exercise_logs = SqlRepository(storage, ExerciseLog)
        self.exercise_sets = SqlRepository(storage, ExerciseSet)
        self.cardio_sessions = SqlRepository(storage, CardioSession)
