"""
Message Timeline: ordered message history of a conversation.

Every operation first goes through the directory's participancy gate. Messages
are ordered newest first by `(created_at, id)` and paginated with an opaque
cursor (see `chatcore.utils.cursor`).
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..config.settings import Settings, get_settings
from ..database.session import unit_of_work
from ..exceptions import BadRequestError, ForbiddenError, NotFoundError
from ..models.message import Message, MessageType
from ..repositories import MessageRepository
from ..schemas import MessagePage, MessageRead
from ..utils.cursor import as_utc, decode_cursor, encode_cursor
from ..utils.ids import IDGenerator
from .conversation_directory import ConversationDirectory

logger = logging.getLogger(__name__)


def parse_message_type(value: MessageType | str | None) -> MessageType:
    """Missing type means text. Unknown types are a BadRequestError."""
    if value is None or value == "":
        return MessageType.TEXT
    try:
        return MessageType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in MessageType)
        raise BadRequestError(f"Invalid message type {value!r}; expected one of: {allowed}", fields=["type"]) from None


class MessageTimeline:
    def __init__(
        self,
        db: AsyncSession,
        directory: ConversationDirectory | None = None,
        ids: IDGenerator | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.directory = directory or ConversationDirectory(db, ids, self.settings)
        self.messages = MessageRepository(db, ids)

    def clamp_limit(self, limit: int | None) -> int:
        """Out-of-range or missing limits fall back to the default page size."""
        if limit is None or limit <= 0 or limit > self.settings.MESSAGE_PAGE_MAX:
            return self.settings.MESSAGE_PAGE_DEFAULT
        return limit

    async def _load_own_message(self, caller_id: str, message_id: str) -> Message:
        message = await self.messages.get_live(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found", fields=["message_id"])
        if message.sender_id != caller_id:
            raise ForbiddenError("Only the sender can change this message")
        return message

    async def append(
        self,
        sender_id: str,
        conversation_id: str,
        content: str | None,
        caption: str | None = None,
        type: MessageType | str | None = None,
    ) -> MessageRead:
        """
        Post a message and bump the conversation's `updated_at`, atomically.

        Text messages need non-blank content and take no caption; image/file
        messages may carry an empty content and an optional caption.
        """
        async with unit_of_work(self.db):
            conversation, _ = await self.directory.require_participant(sender_id, conversation_id)
            message_type = parse_message_type(type)
            content = content or ""
            if message_type is MessageType.TEXT:
                if not content.strip():
                    raise BadRequestError("Text message content is required", fields=["content"])
                if caption is not None:
                    raise BadRequestError("Text messages have no caption", fields=["caption"])

            message = await self.messages.create_message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                caption=caption,
            )
            await self.directory.conversations.touch(conversation)

            logger.info(
                "timeline.append.success",
                extra={"conversation_id": conversation_id, "message_id": message.id, "type": message_type.value},
            )
            return MessageRead.model_validate(message)

    async def list_messages(
        self,
        caller_id: str,
        conversation_id: str,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """
        One page of messages, newest first.

        One extra row is fetched to learn whether an older page exists; it is
        never returned. `next_cursor` points at the last returned message and is
        None on the final page.
        """
        await self.directory.require_participant(caller_id, conversation_id)
        limit = self.clamp_limit(limit)
        before = decode_cursor(cursor) if cursor else None

        rows = await self.messages.get_page(conversation_id, limit=limit + 1, before=before)
        has_more = len(rows) > limit
        rows = rows[:limit]

        next_cursor = None
        if has_more and rows:
            last = rows[-1]
            next_cursor = encode_cursor(as_utc(last.created_at), last.id)

        logger.debug(
            "timeline.list",
            extra={"conversation_id": conversation_id, "limit": limit, "returned": len(rows), "has_more": has_more},
        )
        return MessagePage(
            items=[MessageRead.model_validate(m) for m in rows],
            has_more=has_more,
            next_cursor=next_cursor,
        )

    async def get_message(self, caller_id: str, message_id: str) -> MessageRead:
        message = await self.messages.get_live(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found", fields=["message_id"])
        await self.directory.require_participant(caller_id, message.conversation_id)
        return MessageRead.model_validate(message)

    async def edit(
        self,
        caller_id: str,
        message_id: str,
        content: str | None = None,
        caption: str | None = None,
    ) -> MessageRead:
        """
        Edit a message the caller sent.

        Text messages: only `content` may change. Image/file messages: only
        `caption` may change. A successful edit sets `is_edited` for good.
        """
        if content is None and caption is None:
            raise BadRequestError("Nothing to edit: provide content or caption")

        async with unit_of_work(self.db):
            message = await self._load_own_message(caller_id, message_id)

            if message.type.content_is_mutable:
                if caption is not None:
                    raise BadRequestError("Text messages have no caption", fields=["caption"])
                if not content or not content.strip():
                    raise BadRequestError("Text message content is required", fields=["content"])
                changes = {"content": content}
            else:
                if content is not None:
                    raise BadRequestError(
                        f"Content of {message.type.value} messages cannot be edited", fields=["content"]
                    )
                changes = {"caption": caption}

            message = await self.messages.edit_content(message, **changes)
            logger.info("timeline.edit.success", extra={"message_id": message_id, "fields": sorted(changes)})
            return MessageRead.model_validate(message)

    async def delete(self, caller_id: str, message_id: str) -> None:
        """Soft-delete a message the caller sent. It disappears from every read."""
        async with unit_of_work(self.db):
            message = await self._load_own_message(caller_id, message_id)
            await self.messages.soft_delete(message)
            logger.info("timeline.delete.success", extra={"message_id": message_id})
