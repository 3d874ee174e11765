from pydantic import Field, field_validator
from typing import Optional

from classcrush.models.base import StoredRecord, now_millis


class ChatMessage(StoredRecord):
    """Message at ``chats/{chatKey}/messages/{pushId}``."""

    sender_id: str = Field("", alias="senderId")
    sender_name: str = Field("", alias="senderName")
    text: Optional[str] = Field(None, alias="message")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    timestamp: int = Field(default_factory=now_millis)

    @field_validator("text", "image_url", mode="before")
    @classmethod
    def _blank_is_absent(cls, v):
        if v is None:
            return None
        v = str(v)
        return v if v.strip() else None

    @property
    def is_image_only(self) -> bool:
        return self.text is None and self.image_url is not None


class ChatSummary(StoredRecord):
    """Per-owner projection at ``chat_summaries/{ownerId}/{chatKey}``."""

    chat_key: str = Field(..., alias="chatId")
    other_user_id: str = Field(..., alias="otherUserId")
    other_user_name: str = Field("", alias="otherUserName")
    last_message_preview: str = Field("", alias="lastMessage")
    last_message_at: int = Field(0, alias="lastTimestamp")
