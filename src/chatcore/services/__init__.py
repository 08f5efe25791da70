from .conversation_directory import ConversationDirectory
from .message_timeline import MessageTimeline

__all__ = ["ConversationDirectory", "MessageTimeline"]
