"""
Logging filters.

- `CorrelationIdFilter` stamps every record with the correlation id of the
  current execution context (one service call, one background job...). The id
  lives in a ContextVar so it follows the flow across `await` boundaries and
  stays isolated between concurrent tasks.
- `RedactFilter` masks attributes whose names look sensitive.

Both filters always return True: they annotate records, they never drop them.

Typical use by whoever drives the core (HTTP handler, worker):

    token = set_correlation_id(new_correlation_id())
    try:
        await directory.leave(caller_id, conversation_id)
    finally:
        reset_correlation_id(token)
"""
import contextvars
import logging
import uuid
from logging import LogRecord

_correlation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

UNSET = "-"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def set_correlation_id(correlation_id: str | None) -> contextvars.Token:
    """Set the id for the current context; keep the token to reset it."""
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


class CorrelationIdFilter(logging.Filter):
    """
    Guarantee a `correlation_id` attribute on every record: the value passed via
    `extra`, else the context value, else "-" so format strings never KeyError.
    """

    def filter(self, record: LogRecord) -> bool:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or get_correlation_id() or UNSET
        )
        return True


class RedactFilter(logging.Filter):
    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "authorization", "email"}
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True
