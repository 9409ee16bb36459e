# Overview: Optimistic-concurrency discipline shared by every mutating service.

"""
Stockroom Consistency Rules (authoritative)

- Every mutator reads before it writes and hands the version it observed to
  the compare-and-swap (check_version + the version-guarded UPDATE that
  SQLAlchemy emits for version_id_col models).
- A failed compare-and-swap is a VersionConflictError. No partial state is
  left behind: the session is rolled back before the error propagates.
- run_with_retry re-runs a whole read-check-write unit on conflict. Use it
  only for idempotent-safe operations whose precondition is re-checked on
  every attempt; for arbitrary field edits call it with attempts=1 so the
  conflict reaches the caller.
- A store failure (OperationalError, pool or lock timeout) means "outcome unknown".
  It is rolled back and surfaced as StoreUnavailableError, never retried here.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    DuplicateError,
    ReferentialConflictError,
    StoreUnavailableError,
    ValidationError,
    VersionConflictError,
)


def begin_write() -> None:
    """
    Open the write transaction for the current unit of work.

    SQLite ignores row locks, so writers take the database write lock up
    front (BEGIN IMMEDIATE) and queue behind each other. Reads that follow
    see the latest committed state. Other backends rely on the
    version-guarded UPDATE alone.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    if not connection.connection.dbapi_connection.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def check_version(entity, expected_version: int, label: str) -> None:
    """Compare-and-swap precondition on an entity that was just read."""
    if entity.version != expected_version:
        raise VersionConflictError(
            f"{label} {entity.id} was modified by another request",
            details={
                "entity": label,
                "id": entity.id,
                "expected_version": expected_version,
                "current_version": entity.version,
            },
        )


def _translate_integrity_error(exc: IntegrityError) -> Exception:
    message = str(exc.orig).lower()
    if "unique" in message or "duplicate" in message:
        return DuplicateError("record violates a uniqueness constraint")
    if "foreign key" in message:
        return ReferentialConflictError("record is referenced by another record")
    return ValidationError("record violates a store constraint")


def _translate_store_error(exc: Exception, label: str | None) -> Exception:
    if isinstance(exc, StaleDataError):
        return VersionConflictError(
            f"{label or 'record'} was modified by another request",
            details={"entity": label},
        )
    if isinstance(exc, IntegrityError):
        return _translate_integrity_error(exc)
    # OperationalError, pool TimeoutError, lost connections: outcome unknown
    return StoreUnavailableError(
        "store operation failed; re-read before retrying",
        details={"cause": type(exc).__name__},
    )


def _guarded(op, label: str | None):
    try:
        op()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise _translate_store_error(exc, label) from exc


def flush_changes(label: str | None = None) -> None:
    """Flush pending writes, translating store failures into domain errors."""
    _guarded(db.session.flush, label)


def commit_changes(label: str | None = None) -> None:
    """Commit the current unit of work, translating store failures into domain errors."""
    _guarded(db.session.commit, label)


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple[type[Exception], ...] = (VersionConflictError,),
    label: str = "operation",
):
    """
    Execute a read-check-write unit, retrying on optimistic-lock conflicts.

    The session is rolled back after every failure so each attempt starts
    from a fresh read. Non-retryable errors propagate after the rollback.
    """
    if attempts is None:
        attempts = current_app.config.get("CONFLICT_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("CONFLICT_RETRY_BACKOFF", 0.05)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1 or not getattr(exc, "retryable", True):
                raise
            current_app.logger.warning(
                "%s: version conflict, retrying (attempt %d of %d)",
                label, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise _translate_store_error(exc, label) from exc
        except Exception:
            db.session.rollback()
            raise
