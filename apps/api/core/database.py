"""
Database connection management.

The storage handle is an explicitly constructed object: the API opens one in
its lifespan hook, Celery tasks open one per worker process, and tests open a
throwaway SQLite one. Services receive it as an argument instead of importing
a module-level engine.
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _log_new_connection(dbapi_conn, connection_record):
    logger.debug("New database connection established")


class StorageClient:
    """Engine + session factory with an explicit open/close lifecycle."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine,
            expire_on_commit=False,  # rows are read after the session closes
        )

    @classmethod
    def open(cls, url: Optional[str] = None) -> "StorageClient":
        """Create the engine for `url` (defaults to the configured database)."""
        url = url or settings.database_url
        if url.startswith("sqlite"):
            # Fan-out reads run on worker threads, each with its own session.
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                echo=settings.DEBUG,
            )
        else:
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
                pool_pre_ping=True,
                echo=settings.DEBUG,
            )
        event.listen(engine, "connect", _log_new_connection)
        logger.info(f"Storage opened ({engine.dialect.name})")
        return cls(engine)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def create_all(self) -> None:
        """Create any missing tables from model metadata."""
        import models  # noqa: F401  (registers the mappers on Base)

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Transactional session scope.

        Commits on clean exit, rolls back and re-raises on any error.
        """
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Storage closed")


def get_storage(request: Request) -> StorageClient:
    """FastAPI dependency: the storage handle opened at startup."""
    return request.app.state.storage
