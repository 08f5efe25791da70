from .conversation import ConversationRead, ConversationSummary, MembershipRead
from .message import MessagePage, MessagePreview, MessageRead
from .user import UserBrief

__all__ = [
    "ConversationRead",
    "ConversationSummary",
    "MembershipRead",
    "MessagePage",
    "MessagePreview",
    "MessageRead",
    "UserBrief",
]
