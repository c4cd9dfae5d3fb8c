"""Engine and session lifecycle for the task store."""

from contextlib import contextmanager
from typing import Generator

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from task_api.config import Settings
from task_api.database.models import Base

logger = structlog.get_logger()

# Sync endpoints run in a threadpool, so SQLite writers must wait for the lock.
SQLITE_BUSY_TIMEOUT_MS = 5000


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out sessions.

    Built once at application startup (or by the CLI) and disposed at
    shutdown. Sessions keep attribute values after commit so rows can be
    serialized once the unit of work has ended.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        echo: bool = False,
    ):
        """Initialize database manager.

        Args:
            database_url: SQLAlchemy URL. Pool options are ignored for SQLite.
            pool_size: Persistent connections kept in the pool.
            max_overflow: Extra connections allowed under load.
            pool_timeout: Seconds to wait for a free connection.
            echo: Log all SQL statements.
        """
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        if self.is_sqlite:
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
        else:
            engine_kwargs = {
                "poolclass": QueuePool,
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
                "pool_pre_ping": True,
            }

        self.engine = create_engine(database_url, echo=echo, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        if self.is_sqlite:
            event.listen(self.engine, "connect", _configure_sqlite_connection)

        logger.info("Database engine created", dialect=self.engine.dialect.name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DatabaseManager":
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            echo=settings.debug,
        )

    def create_tables(self):
        """Create missing tables. Existing tables are left untouched."""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session scope that commits on success and rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
        return True

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections disposed")


def _configure_sqlite_connection(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()
