import asyncio
from datetime import datetime, timezone

import pytest

from storefront.application.chat import (
    ListStaffUseCase, LoadConversationUseCase, SendMessageDTO, SendMessageUseCase
)
from storefront.application.roles import AssignRoleUseCase
from storefront.domain.chat import ChatFeed, is_relevant
from storefront.domain.exceptions import ValidationError
from storefront.domain.models import AppRole, ChatMessage
from storefront.infrastructure.realtime import MessageBroadcaster


def _message(id="m1", sender_id="A", recipient_id=None, content="hello"):
    return ChatMessage(
        id=id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        created_at=datetime.now(timezone.utc),
    )


class TestRelevance:
    @pytest.mark.parametrize("viewer", ["A", "B", "C"])
    def test_broadcast_reaches_everyone(self, viewer):
        assert is_relevant(_message(recipient_id=None), viewer)

    def test_private_message_reaches_both_ends_only(self):
        message = _message(sender_id="A", recipient_id="B")
        assert is_relevant(message, "A")
        assert is_relevant(message, "B")
        assert not is_relevant(message, "C")

    def test_anonymous_viewer_sees_only_broadcasts(self):
        assert not is_relevant(_message(recipient_id="B"), None)


class TestChatFeed:
    def test_appends_relevant_messages_once(self):
        feed = ChatFeed("B", history=[_message("m1")])

        assert feed.receive(_message("m2", sender_id="A", recipient_id="B"))
        assert not feed.receive(_message("m2", sender_id="A", recipient_id="B"))
        assert not feed.receive(_message("m3", sender_id="A", recipient_id="C"))

        assert [m.id for m in feed.messages] == ["m1", "m2"]

    def test_messages_is_a_copy(self):
        feed = ChatFeed("A")
        feed.messages.append(_message())
        assert feed.messages == []


class TestBroadcaster:
    async def test_fans_out_to_each_connection(self):
        broadcaster = MessageBroadcaster()
        first, second = broadcaster.subscribe(), broadcaster.subscribe()

        await broadcaster.publish(_message())

        assert (await first.get()).id == "m1"
        assert (await second.get()).id == "m1"

    async def test_unsubscribed_connection_gets_nothing(self):
        broadcaster = MessageBroadcaster()
        queue = broadcaster.subscribe()
        broadcaster.unsubscribe(queue)

        await broadcaster.publish(_message())

        assert broadcaster.connections == 0
        assert queue.empty()

    async def test_full_queue_drops_without_blocking(self):
        broadcaster = MessageBroadcaster(queue_size=1)
        queue = broadcaster.subscribe()

        await broadcaster.publish(_message("m1"))
        await asyncio.wait_for(broadcaster.publish(_message("m2")), timeout=1)

        assert queue.qsize() == 1
        assert queue.get_nowait().id == "m1"


class TestChatUseCases:
    async def test_send_stores_and_publishes(self, uow):
        broadcaster = MessageBroadcaster()
        queue = broadcaster.subscribe()

        message = await SendMessageUseCase(uow, broadcaster)(SendMessageDTO(sender_id="A", content="  Hi team  "))

        assert message.content == "Hi team"
        assert message.recipient_id is None
        assert queue.get_nowait().id == message.id

    async def test_blank_message_rejected(self, uow):
        with pytest.raises(ValidationError):
            await SendMessageUseCase(uow, MessageBroadcaster())(SendMessageDTO(sender_id="A", content="   "))

    async def test_threads_and_broadcasts_are_separate(self, uow):
        send = SendMessageUseCase(uow, MessageBroadcaster())
        await send(SendMessageDTO(sender_id="A", content="everyone"))
        await send(SendMessageDTO(sender_id="A", recipient_id="B", content="just you"))
        await send(SendMessageDTO(sender_id="B", recipient_id="A", content="thanks"))
        await send(SendMessageDTO(sender_id="C", recipient_id="B", content="other thread"))

        load = LoadConversationUseCase(uow)
        broadcast = await load("B")
        thread = await load("A", recipient_id="B")

        assert [m.content for m in broadcast] == ["everyone"]
        assert [m.content for m in thread] == ["just you", "thanks"]

    async def test_staff_list_excludes_viewer(self, uow):
        assign = AssignRoleUseCase(uow)
        await assign("A", "admin")
        await assign("B", "support")
        await assign("B", "shipping")

        staff = await ListStaffUseCase(uow)("A")

        assert len(staff) == 1
        assert staff[0].user_id == "B"
        assert set(staff[0].roles) == {AppRole.SUPPORT, AppRole.SHIPPING}
