from pydantic import BaseModel, Field
from typing import List, Optional


class MessageCreate(BaseModel):
    """Schema for sending a text message."""
    text: str = Field(..., min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    sender_id: str
    sender_name: str
    text: Optional[str]
    image_url: Optional[str]
    timestamp: int


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    total: int


class ChatSummaryResponse(BaseModel):
    """One inbox row."""
    chat_key: str
    other_user_id: str
    other_user_name: str
    last_message: str
    last_message_time: int


class ChatSummaryListResponse(BaseModel):
    chats: List[ChatSummaryResponse]
    total: int
