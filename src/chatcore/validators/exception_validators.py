"""
Model introspection helpers used by repositories before they insert rows.

They let `BaseRepository.create` fail with a precise `InvalidFieldError` or
`DuplicateError` instead of a raw database error.
"""
from typing import Iterable

from sqlalchemy import UniqueConstraint, and_, inspect as sa_inspect, select


def find_unknown_model_kwargs(model, kwargs: dict) -> list[str]:
    """
    Return the kwarg keys that are not mapped attributes of `model`.
    `model` is the SQLAlchemy model class, not an instance.
    """
    allowed = {attr.key for attr in sa_inspect(model).attrs}
    return [k for k in kwargs if k not in allowed]


def get_required_columns(model) -> list[str]:
    """
    Columns that are NOT NULL, have no client/server default and are not auto PKs.
    """
    cols = []
    for col in model.__table__.columns:
        has_default = col.default is not None or col.server_default is not None
        is_auto_pk = col.autoincrement is True and col.primary_key
        if not col.nullable and not has_default and not is_auto_pk:
            cols.append(col.name)
    return cols


def get_unique_column_sets(model) -> list[Iterable[str]]:
    """
    Unique column sets declared on the table: `unique=True` columns,
    `UniqueConstraint`s and unique indexes.
    """
    table = model.__table__
    unique_sets = [[col.name] for col in table.columns if col.unique]
    unique_sets += [
        [c.name for c in constraint.columns]
        for constraint in table.constraints
        if isinstance(constraint, UniqueConstraint)
    ]
    unique_sets += [[c.name for c in idx.columns] for idx in table.indexes if idx.unique]
    return unique_sets


async def find_unique_conflicts(db, model, kwargs: dict) -> set[str]:
    """
    Best-effort pre-insert check for rows that would violate a unique set.

    A set is only checked when every column is supplied and none of the values
    is None: NULLs never collide in a unique constraint.
    """
    conflicts: set[str] = set()
    for cols in get_unique_column_sets(model):
        if not all(kwargs.get(c) is not None for c in cols):
            continue

        conditions = [getattr(model, c) == kwargs[c] for c in cols]
        res = await db.execute(select(model).where(and_(*conditions)).limit(1))
        if res.scalars().first() is not None:
            conflicts.update(cols)

    return conflicts
