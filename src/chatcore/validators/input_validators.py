from typing import Iterable

from ..exceptions import BadRequestError


def normalize_group_name(name: str | None, max_length: int) -> str:
    """
    Trim a group name and check its length. Raises BadRequestError.
    """
    value = (name or "").strip()
    if not value:
        raise BadRequestError("Group name is required", fields=["name"])
    if len(value) > max_length:
        raise BadRequestError(
            f"Group name must be at most {max_length} characters", fields=["name"]
        )
    return value


def unique_ids(ids: Iterable[str], *, exclude: str | None = None) -> list[str]:
    """
    Deduplicate ids keeping first-seen order, optionally dropping `exclude`.

    Blank or unknown ids are kept so that the caller reports them as missing.
    """
    seen: dict[str, None] = {}
    for value in ids:
        if value != exclude:
            seen.setdefault(value, None)
    return list(seen)


def require_non_empty(values, field: str) -> None:
    if not values:
        raise BadRequestError(f"{field} must not be empty", fields=[field])
