r"""
Centralized access to all database models of the chat core.

    from chatcore.models import User, Conversation, Membership, Message
"""

from .user import User
from .conversation import (
    Conversation,
    ConversationKind,
    Membership,
    MembershipRole,
    make_direct_key,
)
from .message import Message, MessageType

__all__ = [
    "User",
    "Conversation",
    "ConversationKind",
    "Membership",
    "MembershipRole",
    "make_direct_key",
    "Message",
    "MessageType",
]
