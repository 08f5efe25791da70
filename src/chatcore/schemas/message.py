from datetime import datetime

from ..models.message import MessageType
from .base import ReadModel
from .user import UserBrief


class MessageRead(ReadModel):
    id: str
    conversation_id: str
    sender_id: str
    sender: UserBrief | None = None
    content: str
    caption: str | None = None
    type: MessageType
    is_edited: bool
    created_at: datetime
    updated_at: datetime


class MessagePreview(ReadModel):
    """Latest-message excerpt shown in conversation lists."""
    id: str
    sender_id: str
    sender: UserBrief | None = None
    content: str
    caption: str | None = None
    type: MessageType
    created_at: datetime


class MessagePage(ReadModel):
    items: list[MessageRead]
    has_more: bool
    next_cursor: str | None = None
