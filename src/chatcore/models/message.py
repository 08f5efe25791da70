from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Boolean, ForeignKey, Index
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database.base import Base, TimestampMixin

if TYPE_CHECKING:
    from .user import User


# ------------------------------
# Enum to define message types
# ------------------------------
class MessageType(str, PyEnum):
    """Kind of payload a message carries."""
    TEXT = "text"     # content is the message body
    IMAGE = "image"   # content is a media reference; caption is editable
    FILE = "file"     # same rules as image

    @property
    def content_is_mutable(self) -> bool:
        return self is MessageType.TEXT


# ------------------------------
# Message Model
# ------------------------------
class Message(TimestampMixin, Base):
    """
    SQLAlchemy model representing a message in a conversation.

    Timelines are ordered by `(created_at DESC, id DESC)`; ids are monotonic
    ULIDs so they break ties between equal timestamps.
    """
    __tablename__ = "messages"

    ID_PREFIX = "msg"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)

    conversation_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("conversations.id"),
        nullable=False,
    )

    sender_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Text body, or the media reference for image/file messages
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    caption: Mapped[str | None] = mapped_column(Text, nullable=True)

    type: Mapped[MessageType] = mapped_column(
        SQLEnum(MessageType, values_callable=lambda e: [m.value for m in e], name="message_type"),
        default=MessageType.TEXT,
        nullable=False,
    )

    # Once true, never reset
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Loaded eagerly: read models embed the sender
    sender: Mapped["User"] = relationship("User", lazy="selectin")

    __table_args__ = (
        # Serves the timeline page query
        Index("ix_messages_conversation_created", "conversation_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id!r}, conversation_id={self.conversation_id!r}, type={self.type.value!r})>"
