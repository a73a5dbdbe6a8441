"""Tests for MessagingService against the in-memory backend."""

import pytest

from social_service.config import settings
from social_service.exceptions import NotFound, ValidationError
from tests.conftest import make_user


async def _unread(service, user):
    return (await service.unread_count(user.id)).count


class TestSendMessage:
    async def test_send_creates_unread_message(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")

        message = await messaging_service.send_message(alice.id, bob.id, "  hi  ")

        assert message.text == "hi"
        assert message.is_me is True
        assert message.read_at is None
        assert await _unread(messaging_service, bob) == 1
        assert await _unread(messaging_service, alice) == 0

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    async def test_empty_text_rejected(self, repos, messaging_service, text):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        with pytest.raises(ValidationError):
            await messaging_service.send_message(alice.id, bob.id, text)

    async def test_oversized_text_rejected(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        with pytest.raises(ValidationError, match="at most"):
            await messaging_service.send_message(
                alice.id, bob.id, "x" * (settings.MAX_MESSAGE_LENGTH + 1)
            )

    async def test_message_self_rejected(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        with pytest.raises(ValidationError):
            await messaging_service.send_message(alice.id, alice.id, "note to self")

    async def test_unknown_recipient(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        with pytest.raises(NotFound):
            await messaging_service.send_message(alice.id, 777, "hello?")


class TestListMessages:
    async def test_alternating_messages_in_order(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        await messaging_service.send_message(alice.id, bob.id, "a1")
        await messaging_service.send_message(bob.id, alice.id, "b1")
        await messaging_service.send_message(alice.id, bob.id, "a2")
        await messaging_service.send_message(bob.id, alice.id, "b2")

        as_alice = await messaging_service.list_messages(alice.id, bob.id)
        as_bob = await messaging_service.list_messages(bob.id, alice.id)

        assert [m.text for m in as_alice] == ["a1", "b1", "a2", "b2"]
        assert [m.text for m in as_bob] == ["a1", "b1", "a2", "b2"]
        assert [m.is_me for m in as_alice] == [True, False, True, False]
        assert [m.is_me for m in as_bob] == [False, True, False, True]

    async def test_other_conversations_excluded(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        carol = await make_user(repos, "carol")
        await messaging_service.send_message(alice.id, bob.id, "for bob")
        await messaging_service.send_message(alice.id, carol.id, "for carol")

        messages = await messaging_service.list_messages(alice.id, bob.id)
        assert [m.text for m in messages] == ["for bob"]


class TestReadState:
    async def test_scenario_hi_then_mark_read(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        await messaging_service.send_message(alice.id, bob.id, "hi")

        assert await _unread(messaging_service, bob) == 1
        conversations = await messaging_service.list_conversations(bob.id)
        assert len(conversations) == 1
        assert conversations[0].id == alice.id
        assert conversations[0].unread_count == 1
        assert conversations[0].last_message.text == "hi"
        assert conversations[0].last_message.is_me is False

        await messaging_service.mark_read(bob.id, alice.id)
        assert await _unread(messaging_service, bob) == 0

    async def test_mark_read_is_idempotent(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        await messaging_service.send_message(alice.id, bob.id, "one")
        await messaging_service.send_message(alice.id, bob.id, "two")

        first = await messaging_service.mark_read(bob.id, alice.id)
        after_first = await messaging_service.list_messages(bob.id, alice.id)
        second = await messaging_service.mark_read(bob.id, alice.id)
        after_second = await messaging_service.list_messages(bob.id, alice.id)

        assert first.updated == 2
        assert second.updated == 0
        assert after_first == after_second
        assert all(m.read_at is not None for m in after_second)

    async def test_mark_read_only_touches_incoming(self, repos, messaging_service):
        alice = await make_user(repos, "alice")
        bob = await make_user(repos, "bob")
        await messaging_service.send_message(alice.id, bob.id, "to bob")
        await messaging_service.send_message(bob.id, alice.id, "to alice")

        await messaging_service.mark_read(bob.id, alice.id)

        assert await _unread(messaging_service, bob) == 0
        assert await _unread(messaging_service, alice) == 1

    async def test_global_count_equals_sum_of_conversations(self, repos, messaging_service):
        viewer = await make_user(repos, "viewer")
        others = [await make_user(repos, name) for name in ("amy", "ben", "cat")]
        for index, other in enumerate(others):
            for n in range(index + 1):
                await messaging_service.send_message(other.id, viewer.id, f"msg {n}")
        await messaging_service.send_message(viewer.id, others[0].id, "reply")
        await messaging_service.mark_read(viewer.id, others[1].id)

        conversations = await messaging_service.list_conversations(viewer.id)
        total = await _unread(messaging_service, viewer)

        assert total == sum(c.unread_count for c in conversations)
        assert total == 1 + 3


class TestConversations:
    async def test_ordered_by_most_recent_message(self, repos, messaging_service):
        viewer = await make_user(repos, "viewer")
        amy = await make_user(repos, "amy")
        ben = await make_user(repos, "ben")
        await messaging_service.send_message(amy.id, viewer.id, "from amy")
        await messaging_service.send_message(ben.id, viewer.id, "from ben")
        await messaging_service.send_message(viewer.id, amy.id, "back to amy")

        conversations = await messaging_service.list_conversations(viewer.id)

        assert [c.username for c in conversations] == ["amy", "ben"]
        assert conversations[0].last_message.text == "back to amy"
        assert conversations[0].last_message.is_me is True
        assert conversations[0].unread_count == 1

    async def test_no_messages_no_conversations(self, repos, messaging_service):
        viewer = await make_user(repos, "viewer")
        assert await messaging_service.list_conversations(viewer.id) == []
        assert await _unread(messaging_service, viewer) == 0
