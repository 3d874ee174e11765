"""
Chat service and the Chat Summary Projector.

Messages live at ``chats/{chatKey}/messages``; every sent message is
projected into one ``chat_summaries/{ownerId}/{chatKey}`` entry per
participant so each inbox can be listed without reading every chat.
"""

from typing import AsyncIterator, Callable, Dict, List, Optional

import structlog

from classcrush.config import settings
from classcrush.core.errors import ClassCrushError, InvalidInput
from classcrush.db.store import RecordStore, join_path
from classcrush.models.base import now_millis
from classcrush.models.chat import ChatMessage, ChatSummary
from classcrush.services.chat_identity import participants_of
from classcrush.services.media import BlobStore, ImageVariant


logger = structlog.get_logger(__name__)

CHATS = "chats"
CHAT_SUMMARIES = "chat_summaries"


def _decode_messages(raw: Optional[Dict]) -> List[ChatMessage]:
    messages = [ChatMessage.from_record(key, value) for key, value in (raw or {}).items()]
    return sorted(messages, key=lambda m: m.timestamp)


def _decode_summaries(raw: Optional[Dict]) -> List[ChatSummary]:
    summaries = [ChatSummary.from_record(key, value) for key, value in (raw or {}).items()]
    return sorted(summaries, key=lambda s: s.last_message_at, reverse=True)


class ChatService:
    """Sends messages and keeps per-user chat summaries current."""

    def __init__(
        self,
        store: RecordStore,
        blob_store: Optional[BlobStore] = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.store = store
        self.blob_store = blob_store
        self.clock = clock

    async def join_chat(self, chat_key: str, user_id: str) -> None:
        if not chat_key or not user_id:
            raise InvalidInput("chat_key and user_id are required")
        await self.store.set(join_path(CHATS, chat_key, "participants", user_id), True)

    async def send_message(self, chat_key: str, message: ChatMessage) -> ChatMessage:
        """
        Append ``message`` to the chat and project it into both summaries.

        The message is stamped with the current time. A failure while
        projecting summaries is logged; the message itself stays sent.
        """
        if not chat_key:
            raise InvalidInput("chat_key is required")
        if not message.sender_id:
            raise InvalidInput("A message needs a sender")
        if (message.text is None) == (message.image_url is None):
            raise InvalidInput("A message carries either text or an image")

        first, second = participants_of(chat_key)
        if message.sender_id not in (first, second):
            raise InvalidInput("Sender is not a participant of this chat")

        await self.join_chat(chat_key, message.sender_id)

        message = message.model_copy(update={"timestamp": self.clock()})
        await self.store.push(join_path(CHATS, chat_key, "messages"), message.to_record())

        log = logger.bind(chat_key=chat_key, sender_id=message.sender_id)
        try:
            await self.on_message_sent(chat_key, message, first, second)
        except ClassCrushError as e:
            log.warning("chat_summary_update_failed", error=e.message)
        log.info("message_sent", image=message.is_image_only)
        return message

    async def send_image_message(
        self, chat_key: str, sender_id: str, sender_name: str, image_bytes: bytes
    ) -> ChatMessage:
        """Upload ``image_bytes`` and send it as an image-only message."""
        if self.blob_store is None:
            raise InvalidInput("Image messages are not available")
        image = await self.blob_store.upload(sender_id, image_bytes, ImageVariant.CHAT)
        message = ChatMessage(sender_id=sender_id, sender_name=sender_name, image_url=image.secure_url)
        return await self.send_message(chat_key, message)

    async def _display_name(self, user_id: str) -> Optional[str]:
        name = await self.store.get_or_none(join_path("users", user_id, "name"))
        return name or None

    async def on_message_sent(
        self, chat_key: str, message: ChatMessage, user_a: str, user_b: str
    ) -> None:
        """Write both participants' summaries in one multi-path update."""
        preview = settings.IMAGE_MESSAGE_PLACEHOLDER if message.is_image_only else (message.text or "")
        fields = {}
        for owner, other in ((user_a, user_b), (user_b, user_a)):
            fallback = message.sender_name if other == message.sender_id else ""
            other_name = await self._display_name(other) or fallback
            summary = ChatSummary(
                chat_key=chat_key,
                other_user_id=other,
                other_user_name=other_name,
                last_message_preview=preview,
                last_message_at=message.timestamp,
            )
            fields[join_path(owner, chat_key)] = summary.to_record()
        await self.store.update_fields(CHAT_SUMMARIES, fields)

    async def list_summaries(self, owner_id: str) -> List[ChatSummary]:
        """Newest conversation first."""
        if not owner_id:
            raise InvalidInput("owner_id is required")
        return _decode_summaries(await self.store.get_or_none(join_path(CHAT_SUMMARIES, owner_id)))

    async def list_messages(self, chat_key: str) -> List[ChatMessage]:
        """Oldest message first, regardless of storage order."""
        if not chat_key:
            raise InvalidInput("chat_key is required")
        return _decode_messages(await self.store.get_or_none(join_path(CHATS, chat_key, "messages")))

    async def watch_messages(self, chat_key: str) -> AsyncIterator[List[ChatMessage]]:
        """Yield the ordered message list on every change until the consumer stops."""
        subscription = await self.store.subscribe(join_path(CHATS, chat_key, "messages"))
        try:
            async for snapshot in subscription:
                yield _decode_messages(snapshot)
        finally:
            subscription.close()

    async def watch_summaries(self, owner_id: str) -> AsyncIterator[List[ChatSummary]]:
        subscription = await self.store.subscribe(join_path(CHAT_SUMMARIES, owner_id))
        try:
            async for snapshot in subscription:
                yield _decode_summaries(snapshot)
        finally:
            subscription.close()
