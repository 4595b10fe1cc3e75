"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from rentbook.core.config import settings
from rentbook.core.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


def _build_engine_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.sql_echo, "future": True}
    if settings.is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
    return kwargs


def enable_immediate_transactions(target: Engine) -> None:
    """
    Start every SQLite transaction with ``BEGIN IMMEDIATE``.

    pysqlite otherwise defers BEGIN until the first write, so a conflict check
    would read outside the write lock. Taking the lock at BEGIN makes the
    check-then-insert of two booking writers run one after the other; the
    loser sees "database is locked", which ``with_db_retry`` treats as contention.
    """

    @event.listens_for(target, "connect")
    def _disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine: Engine = create_engine(settings.database_url, **_build_engine_kwargs())

if settings.is_sqlite:
    enable_immediate_transactions(engine)
    logger.debug("SQLite engine configured for BEGIN IMMEDIATE transactions")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


T = TypeVar("T")
# serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = ("40001", "40P01")
_RETRYABLE_ERROR_SNIPPETS = (
    "could not serialize access",
    "deadlock detected",
    "database is locked",
)


def is_transient_contention(exc: BaseException) -> bool:
    """True when ``exc`` is a lock/serialization failure worth retrying."""
    if not isinstance(exc, DBAPIError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _RETRYABLE_ERROR_SNIPPETS)


def _retry_delay(attempt: int) -> float:
    base = settings.conflict_retry_base_delay * (2 ** (attempt - 1))
    return base + random.uniform(0, base / 2)


def with_db_retry(op_name: str, func: Callable[[], T], *, max_attempts: int | None = None) -> T:
    """
    Execute a transactional DB operation, retrying on storage contention.

    ``func`` must run its own transaction so every attempt starts clean.
    Exhausting the budget raises ConcurrencyError.
    """

    attempts = max_attempts or settings.conflict_retry_attempts
    attempt = 1
    while True:
        try:
            return func()
        except DBAPIError as exc:
            if not is_transient_contention(exc):
                raise
            if attempt >= attempts:
                logger.error(
                    "DB contention persisted, giving up",
                    extra={"event": "db_retry_exhausted", "op": op_name, "attempts": attempt},
                )
                raise ConcurrencyError(op_name, attempt) from exc

            delay = _retry_delay(attempt)
            logger.warning(
                "Transient DB contention detected, retrying",
                extra={
                    "event": "db_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": str(exc),
                },
            )
            time.sleep(delay)
            attempt += 1


__all__ = [
    "Base",
    "SessionLocal",
    "enable_immediate_transactions",
    "engine",
    "get_db",
    "is_transient_contention",
    "with_db_retry",
]
