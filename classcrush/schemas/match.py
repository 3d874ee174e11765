from pydantic import BaseModel, Field
from typing import List, Optional


# ==================== Swipe Schemas ====================

class SwipeResponse(BaseModel):
    """Result of a like or dislike."""
    target_user_id: str
    direction: str
    is_match: bool = False  # True if this like completed a mutual like
    compatibility: Optional[int] = None
    remaining_swipes: int


# ==================== Match Schemas ====================

class MatchWithProfile(BaseModel):
    """Match with the other user's profile info."""
    match_id: str
    chat_key: str
    matched_user_id: str
    matched_user_name: str
    matched_user_photo: Optional[str]
    created_at: int
    last_message: str = ""
    last_message_time: int = 0


class MatchListResponse(BaseModel):
    """List of matches."""
    matches: List[MatchWithProfile]
    total: int


class UnmatchResponse(BaseModel):
    message: str
    records_updated: int


# ==================== Safety Schemas ====================

class ReportCreate(BaseModel):
    """Schema for reporting a user."""
    reason: str = Field(..., min_length=1, max_length=500)


class ReportResponse(BaseModel):
    report_id: str
    status: str


# ==================== Discover Schemas ====================

class DiscoverProfile(BaseModel):
    """Profile shown in discover/swipe deck."""
    user_id: str
    name: str
    age: int
    gender: str
    college: str
    department: str
    year: str
    bio: str
    profile_image_url: str
    additional_images: List[str]
    is_online: bool


class DiscoverResponse(BaseModel):
    """Response for discover endpoint."""
    profiles: List[DiscoverProfile]
    remaining_swipes: int
