"""
Base repository class providing common database operations.

This class serves as a reusable foundation for repositories that interact with
the database using SQLAlchemy's async sessions. Model-specific repositories
inherit the generic logic and add their own queries.

Repositories `flush()` but never `commit()`: the service layer decides when a
unit of work ends (see `chatcore.database.session.unit_of_work`), so several
repository calls can be committed, or rolled back, together.
"""
import logging
import time
from typing import Any, Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import Base, utcnow
from ..exceptions.base import (
    DuplicateError,
    InvalidFieldError,
    RepositoryError,
)
from ..exceptions.mapper import db_error_handler
from ..utils.ids import IDGenerator, default_id_generator
from ..validators.exception_validators import (
    find_unique_conflicts,
    find_unknown_model_kwargs,
    get_required_columns,
)

# Type variable for the model class
ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[ModelType]):
    """
    Generic base repository providing common CRUD operations.

    Type Parameters:
        ModelType: The SQLAlchemy model class this repository manages.

    Args:
        model: the model class itself (e.g. `User`, not `User()`), used to build queries
        db: the async session injected by the caller; all statements run on it
        ids: generator for prefixed ids, assigned on create when no id is given
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession, ids: IDGenerator | None = None):
        self.model = model
        self.db = db
        self.ids = ids or default_id_generator

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _live_filter(self):
        if hasattr(self.model, "deleted_at"):
            return self.model.deleted_at.is_(None)
        return None

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def create(self, **kwargs) -> ModelType:
        """
        Create an entity with validation + DB write. Logging:
        - DEBUG: start event with model name and provided keys (not values).
        - INFO: expected errors (invalid fields, missing required, duplicate).
        - INFO: success event with created id and duration_ms.
        """
        logger.debug(
            "repo.create.start",
            extra={"model": self.model_name, "provided_keys": sorted(kwargs)},
        )

        unknown = find_unknown_model_kwargs(self.model, kwargs)
        if unknown:
            logger.info(
                "repo.create.invalid_fields",
                extra={"model": self.model_name, "invalid_fields": sorted(unknown)},
            )
            raise InvalidFieldError(
                f"Unknown field(s) for {self.model_name}: {', '.join(unknown)}", fields=unknown
            )

        if kwargs.get("id") is None and hasattr(self.model, "ID_PREFIX"):
            kwargs["id"] = self.ids.new(self.model.ID_PREFIX)

        # NOT NULL columns without a default must be present and not None
        missing = [c for c in get_required_columns(self.model) if kwargs.get(c) is None]
        if missing:
            logger.info(
                "repo.create.missing_required",
                extra={"model": self.model_name, "missing_fields": sorted(missing)},
            )
            raise InvalidFieldError(
                f"Missing required field(s): {', '.join(missing)} for {self.model_name}", fields=missing
            )

        async with db_error_handler(self.db, self.model_name):
            conflicts = await find_unique_conflicts(self.db, self.model, kwargs)
            if conflicts:
                logger.info(
                    "repo.create.duplicate_precheck",
                    extra={"model": self.model_name, "conflict_fields": sorted(conflicts)},
                )
                raise DuplicateError(
                    f"{self.model_name} already exists for field(s): {', '.join(sorted(conflicts))}",
                    fields=sorted(conflicts),
                )

            start = time.perf_counter()
            entity = self.model(**kwargs)
            self.db.add(entity)
            await self.db.flush()

        logger.info(
            "repo.create.success",
            extra={
                "model": self.model_name,
                "id": getattr(entity, "id", None),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return entity

    # =================================================================================================================
    # Read
    # =================================================================================================================

    async def get_by_id(self, entity_id: str, *, include_deleted: bool = True) -> ModelType | None:
        """
        Get an entity by its ID, or None.

        With `include_deleted=False`, soft-deleted rows are treated as missing.
        """
        query = select(self.model).where(self.model.id == entity_id)
        live = self._live_filter()
        if not include_deleted and live is not None:
            query = query.where(live)

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(query)
            entity = result.scalar_one_or_none()

        logger.debug(
            "repo.get_by_id",
            extra={"model": self.model_name, "id": entity_id, "found": entity is not None},
        )
        return entity

    async def get_live(self, entity_id: str) -> ModelType | None:
        return await self.get_by_id(entity_id, include_deleted=False)

    async def exists(self, entity_id: str, *, include_deleted: bool = False) -> bool:
        query = select(self.model.id).where(self.model.id == entity_id)
        live = self._live_filter()
        if not include_deleted and live is not None:
            query = query.where(live)

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(query)
            return result.scalar() is not None

    # =================================================================================================================
    # Update / Delete
    # =================================================================================================================

    async def update(self, entity: ModelType, **changes: Any) -> ModelType:
        """
        Apply `changes` to a loaded entity and flush.

        Unlike `create`, None is a legitimate value here (e.g. clearing a field).
        """
        unknown = find_unknown_model_kwargs(self.model, changes)
        if unknown:
            raise InvalidFieldError(
                f"Unknown field(s) for {self.model_name}: {', '.join(unknown)}", fields=unknown
            )

        async with db_error_handler(self.db, self.model_name):
            for key, value in changes.items():
                setattr(entity, key, value)
            await self.db.flush()

        logger.debug(
            "repo.update.success",
            extra={"model": self.model_name, "id": entity.id, "changed": sorted(changes)},
        )
        return entity

    async def touch(self, entity: ModelType) -> ModelType:
        """Bump `updated_at` to now."""
        return await self.update(entity, updated_at=utcnow())

    async def soft_delete(self, entity: ModelType) -> ModelType:
        if not hasattr(self.model, "deleted_at"):
            raise RepositoryError(f"{self.model_name} does not support soft delete")
        now = utcnow()
        await self.update(entity, deleted_at=now, updated_at=now)
        logger.info("repo.soft_delete.success", extra={"model": self.model_name, "id": entity.id})
        return entity

    async def delete(self, entity: ModelType) -> None:
        """Hard delete a loaded entity."""
        async with db_error_handler(self.db, self.model_name):
            await self.db.delete(entity)
            await self.db.flush()
        logger.debug("repo.delete.success", extra={"model": self.model_name, "id": entity.id})
