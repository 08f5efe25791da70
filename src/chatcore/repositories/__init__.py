"""
Repository layer: all data access of the chat core.

Usage:
    from chatcore.repositories import ConversationRepository, MessageRepository
"""

from .base_repository import BaseRepository
from .user_repository import UserRepository
from .conversation_repository import ConversationRepository, MembershipRepository
from .message_repository import MessageRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "ConversationRepository",
    "MembershipRepository",
    "MessageRepository",
]
