from pydantic import Field, field_validator
from typing import List
import enum

from classcrush.models.base import StoredRecord, as_id_list, now_millis


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class Preference(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"
    ALL = "ALL"


class BlobImage(StoredRecord):
    """Uploaded image reference as returned by the blob store."""

    public_id: str = Field("", alias="publicId")
    secure_url: str = Field("", alias="secureUrl")
    thumbnail_url: str = Field("", alias="thumbnailUrl")
    medium_url: str = Field("", alias="mediumUrl")
    uploaded_at: int = Field(default_factory=now_millis, alias="uploadedAt")


class UserProfile(StoredRecord):
    """User document stored at ``users/{id}``."""

    id: str = ""
    name: str = ""
    email: str = ""
    age: int = 18
    gender: Gender = Gender.MALE
    interested_in: Preference = Field(Preference.FEMALE, alias="interestedIn")

    # Affiliation & completeness
    college: str = ""
    department: str = ""
    year: str = ""
    bio: str = ""
    profile_image_url: str = Field("", alias="profileImageUrl")
    profile_image_public_id: str = Field("", alias="profileImagePublicId")
    additional_images: List[BlobImage] = Field(default_factory=list, alias="additionalImages")

    # Activity
    is_online: bool = Field(False, alias="isOnline")
    last_seen: int = Field(0, alias="lastSeen")  # 0 = never set
    created_at: int = Field(default_factory=now_millis, alias="createdAt")
    fcm_token: str = Field("", alias="fcmToken")

    # Id-sets, stored as arrays
    liked_users: List[str] = Field(default_factory=list, alias="likedUsers")
    disliked_users: List[str] = Field(default_factory=list, alias="dislikedUsers")
    matched_users: List[str] = Field(default_factory=list, alias="matches")
    blocked_users: List[str] = Field(default_factory=list, alias="blockedUsers")
    reported_users: List[str] = Field(default_factory=list, alias="reportedUsers")

    @field_validator(
        "liked_users",
        "disliked_users",
        "matched_users",
        "blocked_users",
        "reported_users",
        mode="before",
    )
    @classmethod
    def _coerce_id_list(cls, v):
        return as_id_list(v)

    @field_validator("additional_images", mode="before")
    @classmethod
    def _coerce_images(cls, v):
        if v is None:
            return []
        if isinstance(v, dict):
            return list(v.values())
        return v

    @property
    def swiped_users(self) -> set:
        return set(self.liked_users) | set(self.disliked_users)

    def is_complete(self) -> bool:
        """Enough profile to take part in discovery."""
        return (
            bool(self.name.strip())
            and bool(self.college.strip())
            and bool(self.department.strip())
            and bool(self.year.strip())
            and self.age >= 18
            and bool(self.profile_image_public_id.strip())
        )
