"""
Conversation and membership repositories.

Conversations always travel with their memberships: every read here eagerly
loads them (and each member's user row), since async sessions cannot lazy-load
relationships on attribute access.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.base import utcnow
from ..exceptions.mapper import db_error_handler
from ..models.conversation import (
    Conversation,
    ConversationKind,
    Membership,
    MembershipRole,
    make_direct_key,
)
from ..utils.ids import IDGenerator
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _with_members(query):
    return query.options(
        selectinload(Conversation.memberships).selectinload(Membership.user)
    ).execution_options(populate_existing=True)


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Creation methods insert the conversation and its initial memberships in a
    single flush, so a failure leaves neither behind.
    """

    def __init__(self, db: AsyncSession, ids: IDGenerator | None = None):
        super().__init__(Conversation, db, ids)

    def _membership(self, user_id: str, role: MembershipRole) -> Membership:
        return Membership(
            id=self.ids.new(Membership.ID_PREFIX),
            user_id=user_id,
            role=role,
            joined_at=utcnow(),
        )

    async def create_direct(self, creator_id: str, other_user_id: str) -> Conversation:
        """
        Create a direct conversation between two users, both plain members.

        Raises:
            DuplicateError: If the pair already has a direct conversation
        """
        return await self.create(
            kind=ConversationKind.DIRECT,
            direct_key=make_direct_key(creator_id, other_user_id),
            created_by=creator_id,
            memberships=[
                self._membership(creator_id, MembershipRole.MEMBER),
                self._membership(other_user_id, MembershipRole.MEMBER),
            ],
        )

    async def create_group(self, creator_id: str, name: str, member_ids: list[str]) -> Conversation:
        """
        Create a group with the creator as admin and `member_ids` as members.
        `member_ids` must already be deduplicated and exclude the creator.
        """
        memberships = [self._membership(creator_id, MembershipRole.ADMIN)]
        memberships += [self._membership(uid, MembershipRole.MEMBER) for uid in member_ids]
        return await self.create(
            kind=ConversationKind.GROUP,
            name=name,
            created_by=creator_id,
            memberships=memberships,
        )

    async def get_with_members(self, conversation_id: str, *, lock: bool = False) -> Conversation | None:
        """
        Live conversation with memberships loaded, or None.

        `lock=True` takes a row lock (SELECT ... FOR UPDATE) for the rest of the
        transaction; membership changes that depend on the current member set
        must hold it. Backends without row locks ignore it.
        """
        query = select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.deleted_at.is_(None),
        )
        if lock:
            query = query.with_for_update(of=Conversation)

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(_with_members(query))
            conversation = result.scalar_one_or_none()

        logger.debug(
            "repo.conversation.get",
            extra={"conversation_id": conversation_id, "found": conversation is not None, "lock": lock},
        )
        return conversation

    async def find_direct(self, user_a: str, user_b: str) -> Conversation | None:
        """Live direct conversation of the unordered pair, if any."""
        query = select(Conversation).where(
            Conversation.direct_key == make_direct_key(user_a, user_b),
            Conversation.deleted_at.is_(None),
        )
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(_with_members(query))
            return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        """
        Live conversations `user_id` participates in, most recently updated first.
        """
        query = (
            select(Conversation)
            .join(Membership, Membership.conversation_id == Conversation.id)
            .where(Membership.user_id == user_id, Conversation.deleted_at.is_(None))
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        )
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(_with_members(query))
            conversations = list(result.scalars().unique().all())

        logger.debug(f"Listed {len(conversations)} conversations for user {user_id}")
        return conversations


class MembershipRepository(BaseRepository[Membership]):
    """
    Repository for Membership rows. Memberships are hard-deleted.
    """

    def __init__(self, db: AsyncSession, ids: IDGenerator | None = None):
        super().__init__(Membership, db, ids)

    async def add_member(
        self,
        conversation_id: str,
        user_id: str,
        role: MembershipRole = MembershipRole.MEMBER,
    ) -> Membership:
        """
        Raises:
            DuplicateError: If the user is already a participant
        """
        return await self.create(
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            joined_at=utcnow(),
        )

    async def get_membership(self, conversation_id: str, user_id: str) -> Membership | None:
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                select(Membership).where(
                    Membership.conversation_id == conversation_id,
                    Membership.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_members(self, conversation_id: str) -> list[Membership]:
        """Members in join order; `id` breaks ties between equal join times."""
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                select(Membership)
                .where(Membership.conversation_id == conversation_id)
                .order_by(Membership.joined_at.asc(), Membership.id.asc())
            )
            return list(result.scalars().all())

    async def promote(self, membership: Membership) -> Membership:
        """member -> admin. There is no demotion."""
        membership = await self.update(membership, role=MembershipRole.ADMIN)
        logger.info(
            "repo.membership.promoted",
            extra={"conversation_id": membership.conversation_id, "user_id": membership.user_id},
        )
        return membership

    async def remove(self, membership: Membership) -> None:
        await self.delete(membership)
        logger.info(
            "repo.membership.removed",
            extra={"conversation_id": membership.conversation_id, "user_id": membership.user_id},
        )
