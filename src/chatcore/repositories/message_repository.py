"""
Message repository: timeline reads and message mutations.

Timeline order is `(created_at DESC, id DESC)`. Soft-deleted messages are
excluded from every read.
"""
import logging
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions.mapper import db_error_handler
from ..models.message import Message, MessageType
from ..utils.ids import IDGenerator
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class MessageRepository(BaseRepository[Message]):
    """
    Repository for Message entity operations.
    """

    def __init__(self, db: AsyncSession, ids: IDGenerator | None = None):
        super().__init__(Message, db, ids)

    async def create_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        caption: str | None = None,
        created_at: datetime | None = None,
    ) -> Message:
        """
        Insert a message. `created_at` defaults to now; passing it explicitly is
        meant for imports and tests.
        """
        values = dict(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            caption=caption,
            type=message_type,
            is_edited=False,
        )
        if created_at is not None:
            values.update(created_at=created_at, updated_at=created_at)
        message = await self.create(**values)
        async with db_error_handler(self.db, self.model_name):
            await self.db.refresh(message, ["sender"])
        return message

    async def get_page(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: tuple[datetime, str | None] | None = None,
    ) -> list[Message]:
        """
        Up to `limit` live messages, newest first, strictly older than `before`.

        `before` is `(created_at, id)`: rows at the same timestamp with a smaller
        id are still older. With a None id only the timestamp is compared.
        """
        query = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.deleted_at.is_(None),
        )
        if before is not None:
            ts, message_id = before
            if message_id is None:
                query = query.where(Message.created_at < ts)
            else:
                query = query.where(
                    or_(
                        Message.created_at < ts,
                        and_(Message.created_at == ts, Message.id < message_id),
                    )
                )

        query = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(query)
            messages = list(result.scalars().all())

        logger.debug(
            "repo.message.page",
            extra={"conversation_id": conversation_id, "limit": limit, "returned": len(messages)},
        )
        return messages

    async def get_latest(self, conversation_id: str) -> Message | None:
        """Newest live message of a conversation."""
        page = await self.get_page(conversation_id, limit=1)
        return page[0] if page else None

    async def edit_content(self, message: Message, **changes) -> Message:
        """Apply an edit and mark the message edited. `is_edited` never goes back."""
        return await self.update(message, is_edited=True, **changes)
