"""
Opaque pagination cursor for message timelines.

Format: `<RFC3339 UTC timestamp with microseconds>|<message id>`, e.g.
`2024-05-01T10:00:00.123456Z|msg_01HX...`. The id half breaks ties between
messages sharing a timestamp. A bare timestamp (without `|id`) is accepted too,
with any fractional precision up to nanoseconds.
"""
import re
from datetime import datetime, timezone

from ..exceptions import BadRequestError

_SEPARATOR = "|"
_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (as returned by SQLite) or convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def encode_cursor(created_at: datetime, message_id: str) -> str:
    return f"{format_timestamp(created_at)}{_SEPARATOR}{message_id}"


def parse_timestamp(raw: str) -> datetime:
    match = _TIMESTAMP_RE.match(raw.strip())
    if not match:
        raise BadRequestError("Invalid cursor", fields=["cursor"])

    frac = (match.group("frac") or "0")[:6].ljust(6, "0")
    tz = match.group("tz")
    tz = "+00:00" if tz == "Z" else tz
    try:
        parsed = datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")
    except ValueError as exc:
        raise BadRequestError("Invalid cursor", fields=["cursor"]) from exc
    return parsed.astimezone(timezone.utc)


def decode_cursor(cursor: str) -> tuple[datetime, str | None]:
    """
    Return `(created_at, message_id)`; `message_id` is None for a bare timestamp.
    Raises BadRequestError on malformed input.
    """
    if not cursor or not cursor.strip():
        raise BadRequestError("Invalid cursor", fields=["cursor"])

    raw_ts, sep, message_id = cursor.partition(_SEPARATOR)
    if sep and not message_id.strip():
        raise BadRequestError("Invalid cursor", fields=["cursor"])
    return parse_timestamp(raw_ts), (message_id.strip() or None)
