from fastapi import APIRouter, Depends, File, UploadFile, status

from classcrush.core.dependencies import get_chat_service, get_current_user_id, get_match_engine
from classcrush.core.errors import InvalidInput, NotFound
from classcrush.models.chat import ChatMessage, ChatSummary
from classcrush.services.chat_identity import participants_of
from classcrush.services.chat_service import ChatService
from classcrush.services.match_engine import MatchEngine
from classcrush.schemas.chat import (
    ChatSummaryListResponse,
    ChatSummaryResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
)


router = APIRouter(prefix="/chat", tags=["Chat"])


def to_message_response(message: ChatMessage) -> MessageResponse:
    return MessageResponse(
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        text=message.text,
        image_url=message.image_url,
        timestamp=message.timestamp,
    )


def to_summary_response(summary: ChatSummary) -> ChatSummaryResponse:
    return ChatSummaryResponse(
        chat_key=summary.chat_key,
        other_user_id=summary.other_user_id,
        other_user_name=summary.other_user_name,
        last_message=summary.last_message_preview,
        last_message_time=summary.last_message_at,
    )


def require_participant(chat_key: str, user_id: str) -> None:
    """Only the two users a chat key names may read or write it."""
    if user_id not in participants_of(chat_key):
        raise NotFound("Chat not found.", detail={"chat_key": chat_key})


async def require_match(chat_key: str, user_id: str, engine: MatchEngine) -> None:
    """Sending needs an ACTIVE match with the other participant."""
    require_participant(chat_key, user_id)
    a, b = participants_of(chat_key)
    other = b if a == user_id else a
    if not await engine.are_users_matched(user_id, other):
        raise NotFound("Match not found.", detail={"chat_key": chat_key})


@router.get("/summaries", response_model=ChatSummaryListResponse)
async def get_chat_summaries(
    current_user_id: str = Depends(get_current_user_id),
    chats: ChatService = Depends(get_chat_service),
):
    """Current user's conversations, most recent first."""
    summaries = await chats.list_summaries(current_user_id)
    return ChatSummaryListResponse(
        chats=[to_summary_response(s) for s in summaries],
        total=len(summaries),
    )


@router.get("/{chat_key}/messages", response_model=MessageListResponse)
async def get_messages(
    chat_key: str,
    current_user_id: str = Depends(get_current_user_id),
    chats: ChatService = Depends(get_chat_service),
):
    """Messages of a chat, oldest first."""
    require_participant(chat_key, current_user_id)
    messages = await chats.list_messages(chat_key)
    return MessageListResponse(
        messages=[to_message_response(m) for m in messages],
        total=len(messages),
    )


@router.post(
    "/{chat_key}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    chat_key: str,
    payload: MessageCreate,
    current_user_id: str = Depends(get_current_user_id),
    chats: ChatService = Depends(get_chat_service),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Send a text message to a matched user."""
    await require_match(chat_key, current_user_id, engine)
    sender = await engine.load_profile(current_user_id)
    message = ChatMessage(sender_id=current_user_id, sender_name=sender.name, text=payload.text)
    sent = await chats.send_message(chat_key, message)
    return to_message_response(sent)


@router.post(
    "/{chat_key}/images",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_image(
    chat_key: str,
    file: UploadFile = File(...),
    current_user_id: str = Depends(get_current_user_id),
    chats: ChatService = Depends(get_chat_service),
    engine: MatchEngine = Depends(get_match_engine),
):
    """Upload an image and send it as a message."""
    await require_match(chat_key, current_user_id, engine)
    if file.content_type and not file.content_type.startswith("image/"):
        raise InvalidInput("Only image uploads are accepted.")
    sender = await engine.load_profile(current_user_id)
    sent = await chats.send_image_message(chat_key, current_user_id, sender.name, await file.read())
    return to_message_response(sent)
