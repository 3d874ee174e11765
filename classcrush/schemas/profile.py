from pydantic import BaseModel, Field
from typing import List, Optional

from classcrush.models.user import Gender, Preference


class ProfileCreate(BaseModel):
    """Schema for creating the current user's profile."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = ""
    age: int = Field(..., ge=18, le=100)
    gender: Gender
    interested_in: Preference
    college: str = Field(..., min_length=1, max_length=200)
    department: str = ""
    year: str = ""
    bio: str = Field("", max_length=500)


class ProfileResponse(BaseModel):
    """The current user's own profile."""
    user_id: str
    name: str
    email: str
    age: int
    gender: Gender
    interested_in: Preference
    college: str
    department: str
    year: str
    bio: str
    profile_image_url: str
    additional_images: List[str]
    is_online: bool
    last_seen: int
    is_complete: bool
    remaining_swipes: Optional[int] = None


class PresenceUpdate(BaseModel):
    online: bool


class ImageResponse(BaseModel):
    public_id: str
    secure_url: str
    thumbnail_url: str
    medium_url: str
