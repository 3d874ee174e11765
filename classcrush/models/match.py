from pydantic import Field, field_validator
from typing import Optional
import enum

from classcrush.models.base import StoredRecord, now_millis


class SwipeDirection(str, enum.Enum):
    # Stored values are the legacy card-swipe directions.
    LIKE = "right"
    DISLIKE = "left"


class MatchStatus(str, enum.Enum):
    ACTIVE = "active"
    UNMATCHED = "unmatched"


class ReportStatus(str, enum.Enum):
    PENDING = "pending"


class SwipeRecord(StoredRecord):
    """Append-only swipe log entry at ``swipes/{pushId}``."""

    id: str = ""
    actor_id: str = Field(..., alias="userId")
    target_id: str = Field(..., alias="targetUserId")
    direction: SwipeDirection
    timestamp: int = Field(default_factory=now_millis)


class MatchRecord(StoredRecord):
    """Mutual-like record at ``matches/{id}``. Never physically deleted."""

    id: str = ""
    user_a: str = Field(..., alias="user1Id")
    user_b: str = Field(..., alias="user2Id")
    created_at: int = Field(0, alias="timestamp")
    last_message_preview: str = Field("", alias="lastMessage")
    last_message_at: int = Field(0, alias="lastMessageTime")
    status: MatchStatus = MatchStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, v):
        # Records written before status existed are active.
        return MatchStatus.ACTIVE if v is None else v

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.ACTIVE

    def involves(self, first: str, second: str) -> bool:
        return {self.user_a, self.user_b} == {first, second}

    def other(self, user_id: str) -> Optional[str]:
        if user_id == self.user_a:
            return self.user_b
        if user_id == self.user_b:
            return self.user_a
        return None


class BlockRecord(StoredRecord):
    """Block audit entry at ``blocks/{pushId}``."""

    id: str = ""
    blocker_id: str = Field(..., alias="blockerId")
    blocked_id: str = Field(..., alias="blockedId")
    timestamp: int = Field(default_factory=now_millis)


class ReportRecord(StoredRecord):
    """Moderation report at ``reports/{pushId}``."""

    id: str = ""
    reporter_id: str = Field(..., alias="reporterId")
    reported_id: str = Field(..., alias="reportedId")
    reason: str
    status: ReportStatus = ReportStatus.PENDING
    timestamp: int = Field(default_factory=now_millis)
