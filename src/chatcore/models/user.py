from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from ..database.base import Base, TimestampMixin


class User(TimestampMixin, Base):
    """
    SQLAlchemy model for User.

    Users are registered outside the chat core; the core reads them to validate
    participants and to render direct-conversation titles, and only writes
    their presence fields.
    """
    __tablename__ = "users"

    ID_PREFIX = "user"

    # Prefixed ULID, e.g. "user_01HX..."
    id: Mapped[str] = mapped_column(String(40), primary_key=True)

    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False
    )

    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Presence
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, display_name={self.display_name!r})>"
