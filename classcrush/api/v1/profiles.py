from fastapi import APIRouter, Depends, File, UploadFile, status
from typing import List, Optional

from classcrush.core.dependencies import (
    get_current_user_id,
    get_profile_service,
    get_swipe_limiter,
)
from classcrush.core.errors import InvalidInput
from classcrush.db.redis import SwipeLimiter
from classcrush.models.user import BlobImage, UserProfile
from classcrush.services.profile_service import ProfileService
from classcrush.schemas.profile import (
    ImageResponse,
    PresenceUpdate,
    ProfileCreate,
    ProfileResponse,
)


router = APIRouter(prefix="/profiles", tags=["Profiles"])


def to_profile_response(profile: UserProfile, remaining_swipes: Optional[int] = None) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.id,
        name=profile.name,
        email=profile.email,
        age=profile.age,
        gender=profile.gender,
        interested_in=profile.interested_in,
        college=profile.college,
        department=profile.department,
        year=profile.year,
        bio=profile.bio,
        profile_image_url=profile.profile_image_url,
        additional_images=[img.secure_url for img in profile.additional_images],
        is_online=profile.is_online,
        last_seen=profile.last_seen,
        is_complete=profile.is_complete(),
        remaining_swipes=remaining_swipes,
    )


def to_image_response(image: BlobImage) -> ImageResponse:
    return ImageResponse(
        public_id=image.public_id,
        secure_url=image.secure_url,
        thumbnail_url=image.thumbnail_url,
        medium_url=image.medium_url,
    )


async def read_image(file: UploadFile) -> bytes:
    if file.content_type and not file.content_type.startswith("image/"):
        raise InvalidInput("Only image uploads are accepted.")
    return await file.read()


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    current_user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    limiter: Optional[SwipeLimiter] = Depends(get_swipe_limiter),
):
    """Get current user's profile."""
    profile = await profiles.get_profile(current_user_id)
    remaining = await limiter.remaining(current_user_id) if limiter is not None else None
    return to_profile_response(profile, remaining)


@router.post("/me", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(
    profile_data: ProfileCreate,
    current_user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Create profile for current user."""
    profile = UserProfile(id=current_user_id, **profile_data.model_dump())
    created = await profiles.create_profile(profile)
    return to_profile_response(created)


@router.post("/me/presence", status_code=status.HTTP_204_NO_CONTENT)
async def update_presence(
    presence: PresenceUpdate,
    current_user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Mark the current user online or offline."""
    await profiles.update_online_status(current_user_id, presence.online)


@router.post("/me/image", response_model=ImageResponse)
async def upload_profile_image(
    file: UploadFile = File(...),
    current_user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Replace the primary profile image."""
    image = await profiles.update_profile_image(current_user_id, await read_image(file))
    return to_image_response(image)


@router.post("/me/images", response_model=List[ImageResponse])
async def add_profile_image(
    file: UploadFile = File(...),
    current_user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Add an image to the gallery."""
    images = await profiles.add_additional_image(current_user_id, await read_image(file))
    return [to_image_response(img) for img in images]
