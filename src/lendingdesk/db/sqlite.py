"""Database connection, session and transaction management.

SQLite is the default backend. Write transactions open with
``BEGIN IMMEDIATE`` so the writer lock is held from the first read of a
read-validate-write sequence; reads for reporting use a deferred begin.
Other URLs rely on ``SELECT ... FOR UPDATE`` row locks taken by the
managers; on PostgreSQL each transaction bounds its lock waits with
``lock_timeout``.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import LendingError, TransactionUnavailable
from .models import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs worth retrying: serialization failure, deadlock, lock not available
TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}
TRANSIENT_MESSAGES = ("database is locked", "database table is locked", "busy")


def is_transient(exc: Exception) -> bool:
    """Check whether a storage error is worth retrying."""
    if not isinstance(exc, DBAPIError):
        return False

    if exc.connection_invalidated:
        return True

    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True

    if isinstance(exc, OperationalError):
        message = str(orig).lower()
        return any(fragment in message for fragment in TRANSIENT_MESSAGES)

    return False


def _register_models() -> None:
    """Import every model module so relationships resolve against Base."""
    from ..audit.models import AuditEntry  # noqa: F401
    from ..catalog.models import Item  # noqa: F401
    from ..loans.models import Loan  # noqa: F401
    from ..patrons.models import Patron  # noqa: F401
    from ..policy.models import Policy  # noqa: F401


def _install_sqlite_hooks(engine: Engine) -> None:
    """Take over transaction control from the pysqlite driver."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin", "IMMEDIATE")
        conn.exec_driver_sql(f"BEGIN {mode}")


def lock_timeout_sql(timeout: float) -> str:
    """Statement bounding row-lock waits for the current transaction."""
    # 0 would disable the limit
    return f"SET LOCAL lock_timeout = {max(1, int(timeout * 1000))}"


def _install_postgres_hooks(engine: Engine, timeout: float) -> None:
    """Fail with SQLSTATE 55P03 instead of waiting forever on a row lock."""

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(lock_timeout_sql(timeout))


class Database:
    """Database connection and transaction manager."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        url: Optional[str] = None,
        retry_max: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        busy_timeout: Optional[float] = None,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses LENDINGDESK_DB_PATH or the default location.
            url: Full SQLAlchemy URL; takes precedence over db_path.
            retry_max: Attempts per transaction before giving up
            retry_base_delay: First backoff delay in seconds (doubles each retry)
            busy_timeout: Seconds to wait for a lock before failing (SQLite
                          busy timeout, PostgreSQL lock_timeout)
        """
        _register_models()

        config = get_config()
        if url is None and db_path is None:
            url = config.db_url
            db_path = str(config.db_path)

        self.retry_max = retry_max if retry_max is not None else config.tx_retry_max
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else config.tx_retry_base_delay
        )
        timeout = busy_timeout if busy_timeout is not None else config.busy_timeout

        self.db_path: Optional[Path] = None
        self._is_memory = url is None and str(db_path) == ":memory:"

        if url is not None:
            self.engine = create_engine(url, echo=False)
        elif self._is_memory:
            # StaticPool keeps a single connection so every session shares
            # the same in-memory database
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.db_path = Path(db_path)
            self._ensure_directory()
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": timeout},
            )

        if self.engine.dialect.name == "sqlite":
            _install_sqlite_hooks(self.engine)
        elif self.engine.dialect.name == "postgresql":
            _install_postgres_hooks(self.engine, timeout)

        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
        self.ReadSessionLocal = sessionmaker(
            bind=self.engine.execution_options(sqlite_begin="DEFERRED"),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a write session; commits on clean exit, rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Generator[Session, None, None]:
        """Get a session for advisory reads; never commits."""
        session = self.ReadSessionLocal()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    def run_transaction(self, work: Callable[[Session], T]) -> T:
        """Run ``work`` as one atomic unit, retrying transient conflicts.

        ``work`` receives a fresh session on every attempt and must not
        commit. A :class:`LendingError` aborts without retry.

        Raises:
            LendingError: Raised by ``work``; the transaction is rolled back
            TransactionUnavailable: Storage stayed contended for every attempt
        """
        backoff = self.retry_base_delay

        for attempt in range(1, self.retry_max + 1):
            session = self.SessionLocal()
            try:
                result = work(session)
                session.commit()
                return result
            except LendingError:
                session.rollback()
                raise
            except DBAPIError as e:
                session.rollback()
                if not is_transient(e):
                    raise
                if attempt == self.retry_max:
                    logger.warning("Giving up after %d attempts: %s", attempt, e.orig)
                    raise TransactionUnavailable(attempt, e) from e
                logger.warning(
                    "Transient storage error (attempt %d/%d), retrying in %.3fs: %s",
                    attempt,
                    self.retry_max,
                    backoff,
                    e.orig,
                )
                time.sleep(backoff)
                backoff *= 2
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        # retry_max < 1
        raise TransactionUnavailable(0, RuntimeError("no attempts configured"))


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.dispose()
    _db = None
