from enum import Enum as PyEnum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database.base import Base, TimestampMixin, utcnow

# Avoid circular import issues when using type hints for related models
if TYPE_CHECKING:
    from .user import User


class ConversationKind(str, PyEnum):
    DIRECT = "direct"
    GROUP = "group"


class MembershipRole(str, PyEnum):
    ADMIN = "admin"
    MEMBER = "member"


def make_direct_key(user_a: str, user_b: str) -> str:
    """Canonical, order-independent key of an unordered user pair."""
    first, second = sorted((user_a, user_b))
    return f"{first}:{second}"


class Conversation(TimestampMixin, Base):
    """
    SQLAlchemy model for a Conversation.

    A direct conversation links exactly two users and is identified by
    `direct_key`; a group has a name and any number of members, at least one
    of them admin while the group has members.
    """
    __tablename__ = "conversations"

    ID_PREFIX = "conv"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)

    kind: Mapped[ConversationKind] = mapped_column(
        SQLEnum(ConversationKind, values_callable=lambda e: [m.value for m in e], name="conversation_kind"),
        nullable=False,
    )

    # Groups only
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Direct only; NULL for groups (NULLs never collide in the unique index)
    direct_key: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)

    created_by: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("users.id"),
        nullable=False,
    )

    # --- Relationships ---

    # Loaded eagerly: async sessions cannot lazy-load on attribute access
    memberships: Mapped[list["Membership"]] = relationship(
        "Membership",
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: [Membership.joined_at, Membership.id],
    )

    __table_args__ = (
        Index("ix_conversations_updated_at", "updated_at"),
    )

    @property
    def is_direct(self) -> bool:
        return self.kind == ConversationKind.DIRECT

    def membership_of(self, user_id: str) -> "Membership | None":
        for membership in self.memberships:
            if membership.user_id == user_id:
                return membership
        return None

    @property
    def admin_ids(self) -> list[str]:
        return [m.user_id for m in self.memberships if m.role == MembershipRole.ADMIN]

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id!r}, kind={self.kind.value!r}, name={self.name!r})>"


class Membership(Base):
    """
    A user's participation in a conversation.

    Rows are hard-deleted on leave/kick; rejoining creates a new row with a
    fresh `joined_at`.
    """
    __tablename__ = "memberships"

    ID_PREFIX = "mbr"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)

    conversation_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    role: Mapped[MembershipRole] = mapped_column(
        SQLEnum(MembershipRole, values_callable=lambda e: [m.value for m in e], name="membership_role"),
        default=MembershipRole.MEMBER,
        nullable=False,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="memberships")

    user: Mapped["User"] = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_memberships_conversation_user"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == MembershipRole.ADMIN

    def __repr__(self) -> str:
        return (
            f"<Membership(conversation_id={self.conversation_id!r}, "
            f"user_id={self.user_id!r}, role={self.role.value!r})>"
        )
