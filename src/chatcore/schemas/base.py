from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from ..utils.cursor import as_utc


class ReadModel(BaseModel):
    """
    Base for read models built from ORM entities (`Model.model_validate(entity)`).

    Datetimes are always returned timezone-aware in UTC, whatever the backend
    handed back (SQLite returns naive values).
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, value):
        if isinstance(value, datetime):
            return as_utc(value)
        return value
