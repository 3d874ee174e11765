# Export all models for easy importing
from classcrush.models.user import BlobImage, Gender, Preference, UserProfile
from classcrush.models.match import (
    BlockRecord,
    MatchRecord,
    MatchStatus,
    ReportRecord,
    ReportStatus,
    SwipeDirection,
    SwipeRecord,
)
from classcrush.models.chat import ChatMessage, ChatSummary

__all__ = [
    "BlobImage",
    "Gender",
    "Preference",
    "UserProfile",
    "BlockRecord",
    "MatchRecord",
    "MatchStatus",
    "ReportRecord",
    "ReportStatus",
    "SwipeDirection",
    "SwipeRecord",
    "ChatMessage",
    "ChatSummary",
]
