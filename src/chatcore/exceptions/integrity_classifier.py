"""
Classification of raw SQLAlchemy IntegrityErrors.

The classes below are internal labels ("what failed in the database"). They are
never raised out of the repository layer; `mapper.raise_mapped_integrity_error`
turns them into `DuplicateError` or `RepositoryError`.
"""
import logging
from enum import Enum
from typing import Type

from sqlalchemy.exc import IntegrityError

from .base import RepositoryError

logger = logging.getLogger(__name__)


class ConstraintViolationError(RepositoryError):
    """Base for integrity/constraint violations."""


class UniqueConstraintError(ConstraintViolationError):
    """Unique constraint / duplicate value."""


class NotNullConstraintError(ConstraintViolationError):
    """NOT NULL violation (missing required field)."""


class ForeignKeyConstraintError(ConstraintViolationError):
    """Foreign key constraint violated."""


class CheckConstraintError(ConstraintViolationError):
    """CHECK constraint violated."""


class UnknownIntegrityError(ConstraintViolationError):
    """Unrecognized integrity error."""


# https://www.postgresql.org/docs/current/errcodes-appendix.html
class PostgresErrorCodes(str, Enum):
    UNIQUE_VIOLATION = "23505"
    NOT_NULL_VIOLATION = "23502"
    FOREIGN_KEY_VIOLATION = "23503"
    CHECK_VIOLATION = "23514"


PGCODE_EXCEPTION_MAP = {
    PostgresErrorCodes.UNIQUE_VIOLATION.value: UniqueConstraintError,
    PostgresErrorCodes.NOT_NULL_VIOLATION.value: NotNullConstraintError,
    PostgresErrorCodes.FOREIGN_KEY_VIOLATION.value: ForeignKeyConstraintError,
    PostgresErrorCodes.CHECK_VIOLATION.value: CheckConstraintError,
}

# Ordered: the first matching keyword group wins.
MESSAGE_KEYWORDS: list[tuple[Type[ConstraintViolationError], tuple[str, ...]]] = [
    (UniqueConstraintError, ("unique constraint", "unique failed", "unique violation", "duplicate")),
    (NotNullConstraintError, ("not null constraint", "not null", "null value in column")),
    (ForeignKeyConstraintError, ("foreign key constraint", "foreign key", "is not present in table")),
    (CheckConstraintError, ("check constraint", "check failed")),
]


def _pgcode_of(orig) -> str | None:
    # psycopg exposes `pgcode`, asyncpg exposes `sqlstate` (possibly on `__cause__`)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None


def _constraint_name_of(orig) -> str | None:
    diag = getattr(orig, "diag", None)
    if diag is not None:
        return getattr(diag, "constraint_name", None)
    cause = getattr(orig, "__cause__", None)
    return getattr(cause, "constraint_name", None) if cause is not None else None


def _classify_from_postgres(orig) -> tuple[Type[ConstraintViolationError] | None, str | None]:
    pgcode = _pgcode_of(orig)
    if not pgcode:
        return None, None

    constraint_name = _constraint_name_of(orig)
    exception_class = PGCODE_EXCEPTION_MAP.get(pgcode)
    if exception_class:
        logger.debug(
            "integrity.postgres.classified",
            extra={"pgcode": pgcode, "constraint_name": constraint_name},
        )
        return exception_class, constraint_name

    logger.warning(
        "integrity.postgres.unknown_code",
        extra={"pgcode": pgcode, "constraint_name": constraint_name},
    )
    logger.debug("integrity.postgres.raw", extra={"orig_repr": repr(orig)})
    return UnknownIntegrityError, constraint_name


def _classify_from_message(msg: str) -> Type[ConstraintViolationError]:
    normalized = (msg or "").lower()
    for exception_class, keywords in MESSAGE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return exception_class

    logger.warning("integrity.message.unknown", extra={"message_snippet": (msg or "")[:200]})
    logger.debug("integrity.message.raw", extra={"raw": msg})
    return UnknownIntegrityError


def classify_integrity_error(exc: IntegrityError) -> tuple[Type[ConstraintViolationError], str | None]:
    """
    Classify a SQLAlchemy IntegrityError into a ConstraintViolationError subclass.

    Postgres SQLSTATE codes are preferred; SQLite and MySQL fall back to message
    heuristics. Returns (ExceptionClass, constraint_name or None).
    """
    orig = exc.orig
    exception_class, constraint_name = _classify_from_postgres(orig)
    if exception_class is not None:
        return exception_class, constraint_name

    return _classify_from_message(str(orig) if orig is not None else str(exc)), None
