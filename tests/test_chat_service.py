"""Unit tests for ChatService and the chat summary projection."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeBlobStore
from classcrush.core.errors import InvalidInput, Unavailable
from classcrush.models.chat import ChatMessage
from classcrush.services.chat_identity import chat_key_of
from classcrush.services.chat_service import ChatService
from classcrush.services.media import ImageVariant

KEY = chat_key_of("alice", "bob")


def text(sender="alice", body="hi", name="Alice"):
    return ChatMessage(sender_id=sender, sender_name=name, text=body)


class TestSendMessage:

    async def test_message_and_both_summaries_written(self, chat, store, seed_user):
        await seed_user("alice", name="Alice")
        await seed_user("bob", name="Bob")

        sent = await chat.send_message(KEY, text(body="hello"))

        messages = await chat.list_messages(KEY)
        assert [m.text for m in messages] == ["hello"]
        assert await store.get(f"chats/{KEY}/participants/alice") is True

        alice_inbox = await chat.list_summaries("alice")
        bob_inbox = await chat.list_summaries("bob")
        assert alice_inbox[0].other_user_id == "bob"
        assert alice_inbox[0].other_user_name == "Bob"
        assert bob_inbox[0].other_user_id == "alice"
        assert bob_inbox[0].other_user_name == "Alice"
        for summary in (alice_inbox[0], bob_inbox[0]):
            assert summary.last_message_preview == "hello"
            assert summary.last_message_at == sent.timestamp
            assert summary.chat_key == KEY

    async def test_image_only_uses_placeholder(self, chat):
        image = ChatMessage(sender_id="alice", sender_name="Alice", image_url="https://img/x.jpg")
        await chat.send_message(KEY, image)
        summary = (await chat.list_summaries("bob"))[0]
        assert summary.last_message_preview == "[image]"

    async def test_unknown_names_never_use_own_name(self, chat):
        await chat.send_message(KEY, text(name="Alice"))
        alice_row = (await chat.list_summaries("alice"))[0]
        bob_row = (await chat.list_summaries("bob"))[0]
        assert alice_row.other_user_id == "bob"
        assert alice_row.other_user_name == ""
        assert bob_row.other_user_name == "Alice"

    @pytest.mark.parametrize(
        "message",
        [
            ChatMessage(sender_id="alice", sender_name="Alice"),
            ChatMessage(sender_id="alice", sender_name="Alice", text="  "),
            ChatMessage(sender_id="alice", sender_name="Alice", text="x", image_url="https://img"),
            ChatMessage(sender_id="", sender_name="Alice", text="x"),
            ChatMessage(sender_id="carol", sender_name="Carol", text="x"),
        ],
    )
    async def test_invalid_messages(self, chat, message):
        with pytest.raises(InvalidInput):
            await chat.send_message(KEY, message)

    async def test_empty_chat_key(self, chat):
        with pytest.raises(InvalidInput):
            await chat.send_message("", text())

    async def test_summary_failure_does_not_fail_send(self, store):
        ticks = iter(range(1000, 2000))
        chat = ChatService(store, clock=lambda: next(ticks))
        chat.on_message_sent = AsyncMock(side_effect=Unavailable("summary write failed"))

        sent = await chat.send_message(KEY, text())
        assert sent.timestamp == 1000
        assert len(await chat.list_messages(KEY)) == 1


class TestOrdering:

    async def test_messages_ascending_regardless_of_storage_order(self, chat, store):
        for key, ts in (("z", 300), ("a", 100), ("m", 200)):
            await store.set(f"chats/{KEY}/messages/{key}", {"senderId": "alice", "message": str(ts), "timestamp": ts})
        timestamps = [m.timestamp for m in await chat.list_messages(KEY)]
        assert timestamps == sorted(timestamps) == [100, 200, 300]

    async def test_summaries_descending(self, chat, store):
        ticks = iter([10, 30, 20])
        chat = ChatService(store, clock=lambda: next(ticks))
        for other in ("bob", "carol", "dave"):
            await chat.send_message(chat_key_of("alice", other), text())
        inbox = await chat.list_summaries("alice")
        assert [s.other_user_id for s in inbox] == ["carol", "dave", "bob"]


class TestWatch:

    async def test_watch_messages_yields_snapshots(self, chat):
        stream = chat.watch_messages(KEY)
        assert await stream.__anext__() == []

        await chat.send_message(KEY, text(body="one"))
        snapshot = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert [m.text for m in snapshot] == ["one"]
        await stream.aclose()

    async def test_watch_summaries(self, chat):
        stream = chat.watch_summaries("bob")
        assert await stream.__anext__() == []
        await chat.send_message(KEY, text(body="hey"))
        snapshot = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert snapshot[0].last_message_preview == "hey"
        await stream.aclose()


class TestImageMessage:

    async def test_upload_then_send(self, store):
        blobs = FakeBlobStore()
        chat = ChatService(store, blobs)
        sent = await chat.send_image_message(KEY, "alice", "Alice", b"\xff\xd8jpeg")
        assert blobs.uploads == [("alice", ImageVariant.CHAT)]
        assert sent.image_url == "https://img/alice/1.jpg"
        assert sent.text is None
        assert (await chat.list_summaries("bob"))[0].last_message_preview == "[image]"

    async def test_without_blob_store(self, chat):
        with pytest.raises(InvalidInput):
            await chat.send_image_message(KEY, "alice", "Alice", b"x")
