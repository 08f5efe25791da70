"""
Mapping of storage failures to app-level errors.

Two levels:
    - `integrity_classifier` labels what failed inside the database
      (unique, not-null, foreign key, check, unknown).
    - this module turns that label into the public errors of the core:

| Constraint-level (internal) | → | App-level (external)  |
| --------------------------- | - | --------------------- |
| `UniqueConstraintError`     | → | `DuplicateError`      |
| `NotNullConstraintError`    | → | `RepositoryError`     |
| `ForeignKeyConstraintError` | → | `RepositoryError`     |
| `CheckConstraintError`      | → | `RepositoryError`     |
| anything else               | → | `RepositoryError`     |

Repositories wrap their statements in `db_error_handler` so that no raw
SQLAlchemy exception escapes the storage layer.
"""
import re
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .integrity_classifier import (
    classify_integrity_error,
    UniqueConstraintError,
    NotNullConstraintError,
    ForeignKeyConstraintError,
    CheckConstraintError,
)
from .base import ChatError, DuplicateError, RepositoryError

logger = logging.getLogger(__name__)


# -----------------------
# Column extraction helpers
# -----------------------

def _split_qualified(cols: str) -> list[str]:
    return [c.split(".")[-1].strip().strip('"') for c in re.split(r",\s*", cols)]


def _extract_columns_postgres(msg: str) -> list[str] | None:
    """
    Common Postgres shapes:
      - 'null value in column "name" violates not-null constraint'
      - 'DETAIL:  Key (conversation_id, user_id)=(...) already exists.'
    """
    m = re.search(r'null value in column "(?P<col>[^"]+)"', msg, flags=re.IGNORECASE)
    if m:
        return [m.group("col")]

    m = re.search(r"key \((?P<cols>[^)]+)\)=", msg, flags=re.IGNORECASE)
    if m:
        return _split_qualified(m.group("cols"))
    return None


def _extract_columns_sqlite(msg: str) -> list[str] | None:
    # 'UNIQUE constraint failed: memberships.conversation_id, memberships.user_id'
    m = re.search(r"(?:UNIQUE|NOT NULL) constraint failed: (?P<cols>[^\n]+)", msg, flags=re.IGNORECASE)
    if m:
        return _split_qualified(m.group("cols").strip())
    return None


def _extract_columns_mysql(msg: str) -> list[str] | None:
    # "Duplicate entry 'foo' for key 'uq_users_email'"
    m = re.search(r"for key '?(?P<key>[^'\s]+)'?", msg, flags=re.IGNORECASE)
    if m:
        return [m.group("key")]
    return None


def extract_columns_from_integrity(exc: IntegrityError) -> list[str] | None:
    """Best-effort extraction of column names from the DB message."""
    orig = exc.orig
    msg = str(orig) if orig is not None else str(exc)
    if not msg:
        return None

    for extractor in (_extract_columns_postgres, _extract_columns_sqlite, _extract_columns_mysql):
        cols = extractor(msg)
        if cols:
            return cols
    return None


# -----------------------
# Mapper
# -----------------------

def raise_mapped_integrity_error(exc: IntegrityError, model_name: str | None = None) -> None:
    """
    Map a SQLAlchemy IntegrityError to an app-level exception and raise it.
    Populates `.fields` and `.constraint` where possible.
    """
    exc_cls, constraint_name = classify_integrity_error(exc)
    columns = extract_columns_from_integrity(exc)
    model_part = model_name or "Record"
    context = {"model": model_part, "fields": columns, "constraint": constraint_name}

    if exc_cls is UniqueConstraintError:
        # expected under concurrent creation; callers may recover from it
        logger.info("mapper.duplicate_detected", extra=context)
        if columns:
            raise DuplicateError(
                f"{model_part} already exists for field(s): {', '.join(columns)}",
                fields=columns, constraint=constraint_name,
            ) from exc
        raise DuplicateError(f"{model_part} already exists", constraint=constraint_name) from exc

    if exc_cls is NotNullConstraintError:
        logger.info("mapper.not_null_violation", extra=context)
        detail = f": {', '.join(columns)}" if columns else ""
        raise RepositoryError(
            f"Missing required field(s) for {model_part}{detail}",
            fields=columns, constraint=constraint_name,
        ) from exc

    if exc_cls is ForeignKeyConstraintError:
        logger.info("mapper.foreign_key_violation", extra=context)
        raise RepositoryError(
            f"{model_part} references a missing entity",
            fields=columns, constraint=constraint_name,
        ) from exc

    if exc_cls is CheckConstraintError:
        logger.debug("mapper.check_constraint_failure", extra={**context, "raw": str(exc.orig)})
        raise RepositoryError(
            f"{model_part} business rule violated (check constraint).", constraint=constraint_name
        ) from exc

    logger.warning("mapper.unknown_integrity_error", extra=context)
    logger.debug("mapper.unknown_integrity_raw", extra={"model": model_part, "raw": str(exc.orig)})
    raise RepositoryError(f"{model_part} database integrity error.") from exc


async def _safe_rollback(db: AsyncSession, model_name: str | None) -> None:
    try:
        await db.rollback()
    except Exception:
        logger.exception("mapper.rollback_failed", extra={"model": model_name})


@asynccontextmanager
async def db_error_handler(db: AsyncSession, model_name: str | None = None):
    """
    Usage:
        async with db_error_handler(self.db, self.model.__name__):
            ... DB ops that may raise IntegrityError ...

    IntegrityErrors are mapped, other storage failures become an opaque
    `RepositoryError`. Both roll the session back. `ChatError`s raised inside
    the block are domain decisions and pass through untouched.
    """
    try:
        yield
    except ChatError:
        raise
    except IntegrityError as exc:
        await _safe_rollback(db, model_name)
        raise_mapped_integrity_error(exc, model_name)
    except Exception as exc:
        await _safe_rollback(db, model_name)
        logger.exception("mapper.unexpected_db_error", extra={"model": model_name})
        raise RepositoryError(f"Failed to operate on {model_name or 'database'}") from exc
