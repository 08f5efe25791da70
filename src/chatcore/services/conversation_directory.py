"""
Conversation Directory: conversation lifecycle and membership management.

Every public method takes the id of an already-authenticated caller. Checks run
in a fixed order and the first failing one raises; no method retries.

Mutations run inside `unit_of_work`, so a call either commits entirely or
leaves nothing behind. Operations whose outcome depends on the current member
set (add, leave, kick, rename) first lock the conversation row.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..config.settings import Settings, get_settings
from ..database.session import unit_of_work
from ..exceptions import (
    BadRequestError,
    ConflictError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
)
from ..models.conversation import Conversation, Membership
from ..repositories import (
    ConversationRepository,
    MembershipRepository,
    MessageRepository,
    UserRepository,
)
from ..schemas import ConversationRead, ConversationSummary, MessagePreview
from ..utils.ids import IDGenerator
from ..validators.input_validators import normalize_group_name, require_non_empty, unique_ids

logger = logging.getLogger(__name__)


class ConversationDirectory:
    """
    Owns conversations and memberships.

    Args:
        db: session of the current unit of work
        ids: id generator (defaults to the process-wide one)
        settings: limits such as GROUP_NAME_MAX_LENGTH
    """

    def __init__(self, db: AsyncSession, ids: IDGenerator | None = None, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.users = UserRepository(db, ids)
        self.conversations = ConversationRepository(db, ids)
        self.memberships = MembershipRepository(db, ids)
        self.messages = MessageRepository(db, ids)

    # -----------------------------------------------------------------------------------------------------------------
    # Guards
    # -----------------------------------------------------------------------------------------------------------------

    async def _load(self, conversation_id: str, *, lock: bool = False) -> Conversation:
        conversation = await self.conversations.get_with_members(conversation_id, lock=lock)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found", fields=["conversation_id"])
        return conversation

    @staticmethod
    def _require_group(conversation: Conversation, operation: str) -> None:
        if conversation.is_direct:
            raise BadRequestError(f"Cannot {operation} a direct conversation")

    @staticmethod
    def _require_admin(conversation: Conversation, user_id: str) -> Membership:
        membership = conversation.membership_of(user_id)
        if membership is None or not membership.is_admin:
            raise ForbiddenError("Only group admins can do this")
        return membership

    async def require_participant(
        self,
        user_id: str,
        conversation_id: str,
        *,
        admin: bool = False,
        lock: bool = False,
    ) -> tuple[Conversation, Membership]:
        """
        Participancy gate shared with the message timeline.

        Raises:
            NotFoundError: conversation missing or soft-deleted
            ForbiddenError: user is not a participant (or not an admin when `admin=True`)
        """
        conversation = await self._load(conversation_id, lock=lock)
        membership = conversation.membership_of(user_id)
        if membership is None:
            raise ForbiddenError("You are not a participant of this conversation")
        if admin and not membership.is_admin:
            raise ForbiddenError("Only group admins can do this")
        return conversation, membership

    @staticmethod
    def _display_of(conversation: Conversation, viewer_id: str) -> tuple[str | None, str | None]:
        """Title and avatar as `viewer_id` sees them: the group name, or the other participant."""
        if not conversation.is_direct:
            return conversation.name, None
        other = next((m for m in conversation.memberships if m.user_id != viewer_id), None)
        if other is None or other.user is None:
            return None, None
        return other.user.display_name, other.user.avatar_url

    def _read(self, conversation: Conversation, viewer_id: str) -> ConversationRead:
        display_name, display_avatar = self._display_of(conversation, viewer_id)
        return ConversationRead.model_validate(conversation).model_copy(
            update={"display_name": display_name, "display_avatar": display_avatar}
        )

    async def _reload(self, conversation_id: str, viewer_id: str) -> ConversationRead:
        conversation = await self._load(conversation_id)
        return self._read(conversation, viewer_id)

    # -----------------------------------------------------------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------------------------------------------------------

    async def create_or_get_direct(self, caller_id: str, other_user_id: str) -> ConversationRead:
        """
        Return the direct conversation between the two users, creating it if needed.

        Idempotent and symmetric: (A, B) and (B, A) yield the same conversation.
        """
        if other_user_id == caller_id:
            raise BadRequestError("Cannot start a direct conversation with yourself", fields=["user_id"])

        try:
            async with unit_of_work(self.db):
                if not await self.users.exists(other_user_id):
                    raise NotFoundError(f"User {other_user_id} not found", fields=["user_id"])

                existing = await self.conversations.find_direct(caller_id, other_user_id)
                if existing is not None:
                    logger.debug("directory.direct.existing", extra={"conversation_id": existing.id})
                    return self._read(existing, caller_id)

                created = await self.conversations.create_direct(caller_id, other_user_id)
                logger.info(
                    "directory.direct.created",
                    extra={"conversation_id": created.id, "caller_id": caller_id, "other_user_id": other_user_id},
                )
                return await self._reload(created.id, caller_id)
        except DuplicateError:
            # another request created the pair first; its row is now committed
            async with unit_of_work(self.db):
                winner = await self.conversations.find_direct(caller_id, other_user_id)
                if winner is None:
                    raise
                logger.info("directory.direct.race_resolved", extra={"conversation_id": winner.id})
                return self._read(winner, caller_id)

    async def create_group(self, caller_id: str, name: str, participant_ids: list[str]) -> ConversationRead:
        """
        Create a group. The caller becomes its only admin; everybody else in
        `participant_ids` joins as a member.
        """
        name = normalize_group_name(name, self.settings.GROUP_NAME_MAX_LENGTH)
        require_non_empty(participant_ids, "participant_ids")

        async with unit_of_work(self.db):
            member_ids = unique_ids(participant_ids, exclude=caller_id)
            found = await self.users.get_live_many(member_ids)
            for user_id in member_ids:
                if user_id not in found:
                    raise NotFoundError(f"User {user_id} not found", fields=["participant_ids"])

            created = await self.conversations.create_group(caller_id, name, member_ids)
            logger.info(
                "directory.group.created",
                extra={"conversation_id": created.id, "caller_id": caller_id, "member_count": len(member_ids) + 1},
            )
            return await self._reload(created.id, caller_id)

    # -----------------------------------------------------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------------------------------------------------

    async def get(self, caller_id: str, conversation_id: str) -> ConversationRead:
        conversation, _ = await self.require_participant(caller_id, conversation_id)
        return self._read(conversation, caller_id)

    async def list_for_user(self, caller_id: str) -> list[ConversationSummary]:
        """
        The caller's live conversations, most recently updated first, each with
        its latest live message and a display title.
        """
        conversations = await self.conversations.list_for_user(caller_id)
        summaries = []
        for conversation in conversations:
            latest = await self.messages.get_latest(conversation.id)
            summaries.append(self._summarize(conversation, caller_id, latest))
        return summaries

    def _summarize(self, conversation: Conversation, caller_id: str, latest) -> ConversationSummary:
        display_name, display_avatar = self._display_of(conversation, caller_id)

        return ConversationSummary(
            id=conversation.id,
            kind=conversation.kind,
            name=conversation.name,
            display_name=display_name,
            display_avatar=display_avatar,
            participant_count=len(conversation.memberships),
            updated_at=conversation.updated_at,
            last_message=MessagePreview.model_validate(latest) if latest is not None else None,
        )

    # -----------------------------------------------------------------------------------------------------------------
    # Group administration
    # -----------------------------------------------------------------------------------------------------------------

    async def rename(self, caller_id: str, conversation_id: str, new_name: str) -> ConversationRead:
        async with unit_of_work(self.db):
            conversation = await self._load(conversation_id, lock=True)
            self._require_group(conversation, "rename")
            self._require_admin(conversation, caller_id)
            name = normalize_group_name(new_name, self.settings.GROUP_NAME_MAX_LENGTH)

            await self.conversations.update(conversation, name=name)
            logger.info("directory.group.renamed", extra={"conversation_id": conversation_id, "caller_id": caller_id})
            return await self._reload(conversation_id, caller_id)

    async def add_participants(self, caller_id: str, conversation_id: str, user_ids: list[str]) -> ConversationRead:
        """
        Add users to a group as members. Users already present are skipped.

        All-or-nothing: if any id is unknown, nothing from this call is kept.
        """
        async with unit_of_work(self.db):
            conversation = await self._load(conversation_id, lock=True)
            self._require_group(conversation, "add participants to")
            self._require_admin(conversation, caller_id)
            require_non_empty(user_ids, "user_ids")

            present = {m.user_id for m in conversation.memberships}
            candidates = [uid for uid in unique_ids(user_ids) if uid not in present]
            found = await self.users.get_live_many(candidates)
            for user_id in candidates:
                if user_id not in found:
                    raise NotFoundError(f"User {user_id} not found", fields=["user_ids"])

            for user_id in candidates:
                await self.memberships.add_member(conversation_id, user_id)
            if candidates:
                await self.conversations.touch(conversation)

            logger.info(
                "directory.group.participants_added",
                extra={"conversation_id": conversation_id, "caller_id": caller_id, "added": candidates},
            )
            return await self._reload(conversation_id, caller_id)

    async def leave(self, caller_id: str, conversation_id: str) -> None:
        """
        Remove the caller from a group.

        A sole admin leaving hands the role to the earliest remaining member
        before the caller's membership goes away. When nobody remains the group
        is soft-deleted.
        """
        async with unit_of_work(self.db):
            conversation = await self._load(conversation_id, lock=True)
            self._require_group(conversation, "leave")
            membership = conversation.membership_of(caller_id)
            if membership is None:
                raise ForbiddenError("You are not a participant of this conversation")

            remaining = [m for m in await self.memberships.list_members(conversation_id) if m.user_id != caller_id]
            if membership.is_admin and remaining and not any(m.is_admin for m in remaining):
                successor = remaining[0]
                await self.memberships.promote(successor)
                logger.info(
                    "directory.leave.promoted",
                    extra={"conversation_id": conversation_id, "from_user_id": caller_id, "to_user_id": successor.user_id},
                )

            await self.memberships.remove(membership)
            conversation = await self._load(conversation_id)
            if not conversation.memberships:
                await self.conversations.soft_delete(conversation)
                logger.info("directory.leave.orphan_deleted", extra={"conversation_id": conversation_id})
            else:
                await self.conversations.touch(conversation)

            logger.info("directory.leave.success", extra={"conversation_id": conversation_id, "caller_id": caller_id})

    async def kick(self, admin_id: str, conversation_id: str, target_user_id: str) -> None:
        """
        Remove a non-admin member from a group. Admins cannot be kicked.
        """
        async with unit_of_work(self.db):
            conversation = await self._load(conversation_id, lock=True)
            self._require_group(conversation, "kick from")
            self._require_admin(conversation, admin_id)
            if target_user_id == admin_id:
                raise BadRequestError("Use leave to remove yourself", fields=["user_id"])

            target = conversation.membership_of(target_user_id)
            if target is None:
                raise NotFoundError(f"User {target_user_id} is not a participant", fields=["user_id"])
            if target.is_admin:
                raise ConflictError("Cannot kick an admin", fields=["user_id"])

            await self.conversations.touch(conversation)
            await self.memberships.remove(target)
            logger.info(
                "directory.kick.success",
                extra={"conversation_id": conversation_id, "admin_id": admin_id, "target_user_id": target_user_id},
            )
