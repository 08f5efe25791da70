"""Normalisers applied to raw environment values before pydantic validates them."""
from typing import Any


def _normalize_case(value: Any, upper: bool) -> Any:
    # non-strings are left for pydantic to reject
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value.upper() if upper else value.lower()


def to_uppercase(value: Any) -> Any:
    """`" debug "` -> `"DEBUG"`; None and non-strings pass through."""
    return _normalize_case(value, upper=True)


def to_lowercase(value: Any) -> Any:
    return _normalize_case(value, upper=False)
