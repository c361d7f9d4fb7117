# Overview: Transaction boundaries, row locking and retry helpers shared by all services.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, DomainError, InternalError, TransientInfraError
from ..extensions import db

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "57014"}
LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"

NOWAIT_DIALECTS = {"postgresql", "mysql", "mariadb", "oracle"}

HIGH_LOAD_MESSAGE = "System is under high load, please retry"


def lock_for_update(query, *, nowait: bool = False):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update(nowait=nowait)


def dialect_name() -> str:
    return db.session.get_bind().dialect.name


def supports_nowait_locks() -> bool:
    return dialect_name() in NOWAIT_DIALECTS


def sqlstate(exc: Exception) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_lock_not_available(exc: OperationalError) -> bool:
    if sqlstate(exc) == LOCK_NOT_AVAILABLE_SQLSTATE:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return "could not obtain lock" in message or "nowait is set" in message


def is_transient_error(exc: OperationalError) -> bool:
    """Timeouts, lock waits and serialization failures. Safe to retry."""
    if sqlstate(exc) in TRANSIENT_SQLSTATES:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(
        marker in message
        for marker in ("database is locked", "lock wait timeout", "deadlock", "statement timeout")
    )


def apply_statement_timeout(timeout_ms: int) -> None:
    """Extend the per-statement timeout for the current transaction (PostgreSQL only)."""
    if dialect_name() != "postgresql":
        return
    db.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


@contextmanager
def atomic(operation: str, *, timeout_ms: int | None = None, **context):
    """
    Run the enclosed block as one all-or-nothing unit and commit it.

    - DomainError: rolled back and re-raised unchanged
    - StaleDataError (optimistic version check lost): ConflictError
    - transient OperationalError (timeout, lock wait): TransientInfraError
    - anything else: logged with context, surfaced as a sanitized InternalError
    """
    try:
        if timeout_ms:
            apply_statement_timeout(timeout_ms)
        yield db.session
        db.session.commit()
    except DomainError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.warning("%s lost a concurrent update race: %s", operation, context)
        raise ConflictError(
            "The record was modified by another request; refresh and retry",
            {"operation": operation},
        ) from exc
    except OperationalError as exc:
        db.session.rollback()
        if is_transient_error(exc):
            current_app.logger.warning("%s hit a transient storage failure: %s (%s)", operation, context, sqlstate(exc))
            raise TransientInfraError(HIGH_LOAD_MESSAGE, {"operation": operation}) from exc
        current_app.logger.exception("%s failed: %s", operation, context)
        raise InternalError() from exc
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed: %s", operation, context)
        raise InternalError() from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Only for self-contained units of work:
    the session is rolled back between attempts.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
