"""
User repository.

The chat core does not register users itself in production (accounts are owned
by the identity layer), but it needs to look them up when validating
participants and it tracks their presence.
"""
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import utcnow
from ..exceptions.mapper import db_error_handler
from ..models.user import User
from ..utils.ids import IDGenerator
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """
    Repository for User entity operations.
    """

    def __init__(self, db: AsyncSession, ids: IDGenerator | None = None):
        super().__init__(User, db, ids)

    async def create_user(
        self,
        display_name: str,
        email: str,
        avatar_url: str | None = None,
    ) -> User:
        """
        Create a user. The email is normalized to lowercase.

        Raises:
            DuplicateError: If the email is already registered
        """
        return await self.create(
            display_name=display_name.strip(),
            email=email.strip().lower(),
            avatar_url=avatar_url,
        )

    async def get_live_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Live users among `user_ids`, keyed by id. Missing ids are simply absent."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                select(User).where(User.id.in_(ids), User.deleted_at.is_(None))
            )
            return {user.id: user for user in result.scalars().all()}

    async def set_presence(self, user: User, is_online: bool) -> User:
        """
        Record a presence transition. `last_seen_at` moves on every change so it
        is the time the user was last observed either way.
        """
        user = await self.update(user, is_online=is_online, last_seen_at=utcnow())
        logger.info("repo.user.presence", extra={"user_id": user.id, "is_online": is_online})
        return user
