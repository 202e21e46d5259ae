"""Database connection management for the bulk tag engine.

Replaces module-level engine globals with an explicit ``Database`` object
that is constructed once at process start, opened, and closed on shutdown.
Sessions it hands out are passed into the services that need them.

Usage:
    from src.db.connection import Database

    with Database("sqlite:///bulktag.db") as database:
        with database.session_scope() as session:
            recorder = JobRecorder(session)
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base

logger = logging.getLogger(__name__)

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. BULKTAG_DB_PATH (file path, converted to sqlite URL)
    3. sqlite:///<user data dir>/bulktag.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("BULKTAG_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Pollers can read job progress while the engine writes.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.close()


class Database:
    """Owner of the SQLAlchemy engine and session factory.

    Attributes:
        url: Database URL the engine connects to.
        echo: Whether SQL statements are logged.
    """

    def __init__(self, url: str | None = None, echo: bool = False) -> None:
        """Initialize without connecting.

        Args:
            url: Database URL. Defaults to get_database_url().
            echo: Log emitted SQL (SQLAlchemy echo).
        """
        self.url = url or get_database_url()
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def is_open(self) -> bool:
        """Whether open() has been called without a matching close()."""
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine.

        Raises:
            RuntimeError: If the database has not been opened.
        """
        if self._engine is None:
            raise RuntimeError("Database is not open. Call open() first.")
        return self._engine

    def open(self) -> "Database":
        """Create the engine, session factory and all tables.

        Safe to call multiple times; subsequent calls are no-ops.

        Returns:
            Self, for chaining.
        """
        if self._engine is not None:
            return self

        kwargs: dict[str, Any] = {"echo": self.echo}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in _MEMORY_URLS:
                # One shared connection, otherwise each session sees an empty DB
                kwargs["poolclass"] = StaticPool

        engine = create_engine(self.url, **kwargs)
        if self.url.startswith("sqlite"):
            event.listen(engine, "connect", _set_sqlite_pragma)

        Base.metadata.create_all(bind=engine)
        self._engine = engine
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine,
        )
        logger.info("Database opened: %s", self._redacted_url())
        return self

    def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database closed: %s", self._redacted_url())

    def session(self) -> Session:
        """Return a new session. The caller owns closing it.

        Raises:
            RuntimeError: If the database has not been opened.
        """
        if self._session_factory is None:
            raise RuntimeError("Database is not open. Call open() first.")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Context manager for a session that commits on success.

        Usage:
            with database.session_scope() as session:
                job = session.get(BulkTagJob, job_id)
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _redacted_url(self) -> str:
        """URL with any password replaced, safe for logs."""
        from sqlalchemy.engine import make_url

        try:
            return make_url(self.url).render_as_string(hide_password=True)
        except Exception:
            return "<unparseable url>"
