import asyncio
import math
from datetime import timedelta

import pytest

from chatcore.database.base import utcnow
from chatcore.exceptions import BadRequestError, ForbiddenError, NotFoundError
from chatcore.models import MessageType
from chatcore.services import MessageTimeline
from chatcore.services.message_timeline import parse_message_type
from chatcore.utils.cursor import decode_cursor


def test_parse_message_type():
    assert parse_message_type(None) is MessageType.TEXT
    assert parse_message_type("image") is MessageType.IMAGE
    assert parse_message_type(MessageType.FILE) is MessageType.FILE

    with pytest.raises(BadRequestError) as exc_info:
        parse_message_type("sticker")
    assert exc_info.value.fields == ["type"]


def test_clamp_limit(timeline: MessageTimeline):
    assert timeline.clamp_limit(None) == 20
    assert timeline.clamp_limit(0) == 20
    assert timeline.clamp_limit(-3) == 20
    assert timeline.clamp_limit(51) == 20
    assert timeline.clamp_limit(50) == 50
    assert timeline.clamp_limit(7) == 7


@pytest.mark.asyncio
class TestAppend:

    async def test_text_message(self, timeline, group, alice):
        message = await timeline.append(alice.id, group.id, "hello team")

        assert message.id.startswith("msg_")
        assert message.type == MessageType.TEXT
        assert message.content == "hello team"
        assert message.is_edited is False
        assert message.created_at.tzinfo is not None
        assert message.sender.id == alice.id
        assert message.sender.display_name == "Alice"

    async def test_append_bumps_conversation(self, directory, timeline, group, alice):
        a = alice.id

        message = await timeline.append(a, group.id, "bump")

        refreshed = await directory.get(a, group.id)
        assert refreshed.updated_at >= message.created_at
        assert refreshed.updated_at > group.updated_at

    @pytest.mark.parametrize("content", ["", "   ", None])
    async def test_blank_text_rejected(self, timeline, group, alice, content):
        with pytest.raises(BadRequestError) as exc_info:
            await timeline.append(alice.id, group.id, content)

        assert exc_info.value.fields == ["content"]

    async def test_image_with_caption_and_no_content(self, timeline, group, alice):
        message = await timeline.append(alice.id, group.id, None, caption="sunset", type="image")

        assert message.type == MessageType.IMAGE
        assert message.content == ""
        assert message.caption == "sunset"

    async def test_text_with_caption_rejected(self, timeline, group, alice):
        a = alice.id

        with pytest.raises(BadRequestError) as exc_info:
            await timeline.append(a, group.id, "hello", caption="a caption")

        assert exc_info.value.fields == ["caption"]
        assert (await timeline.list_messages(a, group.id)).items == []

    async def test_cancelled_append_leaves_nothing_behind(self, monkeypatch, directory, timeline, group, alice):
        """
        Behavior:
            - The task is cancelled after the message row was flushed, before commit.
            - Neither the message nor the conversation bump survive.

        Importance:
            - A cancelled request must never leave a half-written message.
        """
        a = alice.id

        async def cancelled(*args, **kwargs):
            raise asyncio.CancelledError()

        monkeypatch.setattr(directory.conversations, "touch", cancelled)

        with pytest.raises(asyncio.CancelledError):
            await timeline.append(a, group.id, "lost")

        monkeypatch.undo()
        assert (await timeline.list_messages(a, group.id)).items == []
        assert (await directory.get(a, group.id)).updated_at == group.updated_at

    async def test_unknown_type(self, timeline, group, alice):
        with pytest.raises(BadRequestError):
            await timeline.append(alice.id, group.id, "x", type="sticker")

    async def test_non_participant(self, timeline, group, dave):
        with pytest.raises(ForbiddenError):
            await timeline.append(dave.id, group.id, "let me in")

    async def test_missing_conversation(self, timeline, alice):
        with pytest.raises(NotFoundError):
            await timeline.append(alice.id, "conv_missing", "hi")


@pytest.mark.asyncio
class TestListMessages:

    async def test_pagination_twenty_then_five(self, timeline, group, alice, bob):
        """
        Behavior:
            - 25 messages, default page size.
            - First page: 20 newest, has_more, a cursor. Second page: the 5 oldest,
              no more, no cursor. Nothing is skipped or repeated.
        """
        a, b = alice.id, bob.id
        sent = []
        for i in range(25):
            sent.append(await timeline.append(a if i % 2 else b, group.id, f"message {i}"))

        first = await timeline.list_messages(a, group.id)
        assert len(first.items) == 20
        assert first.has_more is True
        assert first.next_cursor is not None
        assert [m.id for m in first.items] == [m.id for m in reversed(sent[5:])]

        second = await timeline.list_messages(a, group.id, cursor=first.next_cursor)
        assert len(second.items) == 5
        assert second.has_more is False
        assert second.next_cursor is None
        assert [m.id for m in second.items] == [m.id for m in reversed(sent[:5])]

    @pytest.mark.parametrize("count", [0, 1, 4, 5, 11])
    async def test_every_message_on_exactly_one_page(self, timeline, group, alice, count):
        """
        Behavior:
            - N messages read with page size 4 take ceil(N/4) pages (one empty
              page when there are none).
            - Only the last page reports has_more=False; nothing is missing or repeated.
        """
        a = alice.id
        limit = 4
        sent = [(await timeline.append(a, group.id, f"m{i}")).id for i in range(count)]

        pages, cursor = [], None
        while True:
            page = await timeline.list_messages(a, group.id, cursor=cursor, limit=limit)
            pages.append(page)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert len(pages) == max(1, math.ceil(count / limit))
        assert all(p.has_more for p in pages[:-1])
        assert pages[-1].next_cursor is None
        seen = [m.id for p in pages for m in p.items]
        assert seen == list(reversed(sent))

    async def test_exact_page_has_no_cursor(self, timeline, group, alice):
        a = alice.id
        for i in range(3):
            await timeline.append(a, group.id, f"m{i}")

        page = await timeline.list_messages(a, group.id, limit=3)

        assert len(page.items) == 3
        assert page.has_more is False
        assert page.next_cursor is None

    async def test_cursor_points_at_last_item(self, timeline, group, alice):
        a = alice.id
        for i in range(3):
            await timeline.append(a, group.id, f"m{i}")

        page = await timeline.list_messages(a, group.id, limit=2)

        ts, message_id = decode_cursor(page.next_cursor)
        assert message_id == page.items[-1].id
        assert ts == page.items[-1].created_at

    async def test_identical_timestamps_are_not_skipped(self, timeline, message_repository, db_session, group, alice):
        """
        Behavior:
            - Five messages share one created_at.
            - Paging two at a time still yields all five exactly once.

        Importance:
            - A timestamp-only cursor would drop rows that share the boundary instant.
        """
        a = alice.id
        instant = utcnow() - timedelta(minutes=1)
        for i in range(5):
            await message_repository.create_message(group.id, a, f"same {i}", created_at=instant)
        await db_session.commit()

        seen, cursor = [], None
        while True:
            page = await timeline.list_messages(a, group.id, cursor=cursor, limit=2)
            seen.extend(m.id for m in page.items)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert len(seen) == 5
        assert len(set(seen)) == 5
        assert seen == sorted(seen, reverse=True)

    async def test_limit_out_of_range_uses_default(self, timeline, group, alice):
        a = alice.id
        for i in range(22):
            await timeline.append(a, group.id, f"m{i}")

        assert len((await timeline.list_messages(a, group.id, limit=0)).items) == 20
        assert len((await timeline.list_messages(a, group.id, limit=500)).items) == 20
        assert len((await timeline.list_messages(a, group.id, limit=50)).items) == 22

    @pytest.mark.parametrize("cursor", ["garbage", "2026-13-45T00:00:00Z|msg_x", "|msg_x"])
    async def test_bad_cursor(self, timeline, group, alice, cursor):
        with pytest.raises(BadRequestError) as exc_info:
            await timeline.list_messages(alice.id, group.id, cursor=cursor)

        assert exc_info.value.fields == ["cursor"]

    async def test_non_participant(self, timeline, group, dave):
        with pytest.raises(ForbiddenError):
            await timeline.list_messages(dave.id, group.id)

    async def test_empty_conversation(self, timeline, direct, alice):
        page = await timeline.list_messages(alice.id, direct.id)

        assert page.items == []
        assert page.has_more is False


@pytest.mark.asyncio
class TestGetMessage:

    async def test_participant_reads(self, timeline, group, alice, carol):
        message = await timeline.append(alice.id, group.id, "hi")

        assert (await timeline.get_message(carol.id, message.id)).content == "hi"

    async def test_outsider_forbidden(self, timeline, group, alice, dave):
        message = await timeline.append(alice.id, group.id, "hi")

        with pytest.raises(ForbiddenError):
            await timeline.get_message(dave.id, message.id)

    async def test_missing(self, timeline, alice):
        with pytest.raises(NotFoundError):
            await timeline.get_message(alice.id, "msg_missing")


@pytest.mark.asyncio
class TestEdit:

    async def test_text_content_edit(self, timeline, group, alice):
        a = alice.id
        message = await timeline.append(a, group.id, "helo")

        edited = await timeline.edit(a, message.id, content="hello")

        assert edited.content == "hello"
        assert edited.is_edited is True
        fetched = await timeline.get_message(a, message.id)
        assert fetched.is_edited is True

    async def test_text_caption_rejected(self, timeline, group, alice):
        a = alice.id
        message = await timeline.append(a, group.id, "hi")

        with pytest.raises(BadRequestError):
            await timeline.edit(a, message.id, caption="nope")

        assert (await timeline.get_message(a, message.id)).is_edited is False

    async def test_text_blank_content_rejected(self, timeline, group, alice):
        a = alice.id
        message = await timeline.append(a, group.id, "hi")

        with pytest.raises(BadRequestError):
            await timeline.edit(a, message.id, content="  ")

    async def test_image_caption_only(self, timeline, group, alice):
        """
        Behavior:
            - An image's caption can change; its content cannot.
        """
        a = alice.id
        image = await timeline.append(a, group.id, "https://cdn.example.com/p.png", caption="old", type=MessageType.IMAGE)

        edited = await timeline.edit(a, image.id, caption="new")
        assert edited.caption == "new"
        assert edited.content == "https://cdn.example.com/p.png"
        assert edited.is_edited is True

        with pytest.raises(BadRequestError):
            await timeline.edit(a, image.id, content="https://cdn.example.com/other.png")

    async def test_nothing_to_edit(self, timeline, group, alice):
        a = alice.id
        message = await timeline.append(a, group.id, "hi")

        with pytest.raises(BadRequestError):
            await timeline.edit(a, message.id)

    async def test_only_sender_edits(self, timeline, group, alice, bob):
        a, b = alice.id, bob.id
        message = await timeline.append(a, group.id, "mine")

        with pytest.raises(ForbiddenError):
            await timeline.edit(b, message.id, content="yours")

    async def test_missing_message(self, timeline, alice):
        with pytest.raises(NotFoundError):
            await timeline.edit(alice.id, "msg_missing", content="x")


@pytest.mark.asyncio
class TestDelete:

    async def test_deleted_message_disappears(self, timeline, group, alice, bob):
        a, b = alice.id, bob.id
        keep = await timeline.append(a, group.id, "keep")
        gone = await timeline.append(a, group.id, "gone")

        await timeline.delete(a, gone.id)

        page = await timeline.list_messages(b, group.id)
        assert [m.id for m in page.items] == [keep.id]
        with pytest.raises(NotFoundError):
            await timeline.get_message(b, gone.id)
        with pytest.raises(NotFoundError):
            await timeline.edit(a, gone.id, content="back")
        with pytest.raises(NotFoundError):
            await timeline.delete(a, gone.id)

    async def test_only_sender_deletes(self, timeline, group, alice, bob):
        a, b = alice.id, bob.id
        message = await timeline.append(a, group.id, "mine")

        with pytest.raises(ForbiddenError):
            await timeline.delete(b, message.id)

        assert (await timeline.get_message(a, message.id)).id == message.id

    async def test_deleted_message_leaves_summary(self, directory, timeline, group, alice):
        a = alice.id
        first = await timeline.append(a, group.id, "first")
        second = await timeline.append(a, group.id, "second")

        await timeline.delete(a, second.id)

        (row,) = await directory.list_for_user(a)
        assert row.last_message.id == first.id


@pytest.mark.asyncio
class TestPreviews:

    async def test_summary_preview_carries_sender_and_caption(self, directory, timeline, group, alice, bob):
        a, b = alice.id, bob.id
        await timeline.append(b, group.id, "https://cdn.example.com/cat.png", caption="look", type="image")

        (row,) = await directory.list_for_user(a)

        assert row.last_message.caption == "look"
        assert row.last_message.sender.display_name == "Bob"
        assert row.last_message.sender.avatar_url == "https://cdn.example.com/bob.png"
