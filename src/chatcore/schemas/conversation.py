from datetime import datetime

from ..models.conversation import ConversationKind, MembershipRole
from .base import ReadModel
from .message import MessagePreview
from .user import UserBrief


class MembershipRead(ReadModel):
    id: str
    user_id: str
    role: MembershipRole
    joined_at: datetime
    user: UserBrief | None = None


class ConversationRead(ReadModel):
    """
    A conversation with its participants, as seen by one viewer.

    `display_name`/`display_avatar` depend on the viewer (the other participant
    of a direct conversation) and are filled in by the directory.
    """

    id: str
    kind: ConversationKind
    name: str | None = None
    display_name: str | None = None
    display_avatar: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    memberships: list[MembershipRead] = []

    @property
    def participant_ids(self) -> list[str]:
        return [m.user_id for m in self.memberships]

    def role_of(self, user_id: str) -> MembershipRole | None:
        for membership in self.memberships:
            if membership.user_id == user_id:
                return membership.role
        return None


class ConversationSummary(ReadModel):
    """
    One row of a user's conversation list.

    `display_name`/`display_avatar` are what a client shows as the title: the
    group name, or the other participant for a direct conversation.
    """

    id: str
    kind: ConversationKind
    name: str | None = None
    display_name: str | None = None
    display_avatar: str | None = None
    participant_count: int
    updated_at: datetime
    last_message: MessagePreview | None = None
