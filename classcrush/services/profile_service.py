from typing import Callable, List, Optional

import structlog

from classcrush.core.errors import InvalidInput
from classcrush.db.store import RecordStore, join_path
from classcrush.models.base import now_millis
from classcrush.models.user import BlobImage, UserProfile
from classcrush.services.media import BlobStore, ImageVariant


logger = structlog.get_logger(__name__)

USERS = "users"


class ProfileService:
    """Reads and updates a user's own profile document."""

    def __init__(
        self,
        store: RecordStore,
        blob_store: Optional[BlobStore] = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.store = store
        self.blob_store = blob_store
        self.clock = clock

    def _require_blob_store(self) -> BlobStore:
        if self.blob_store is None:
            raise InvalidInput("Image uploads are not available")
        return self.blob_store

    async def get_profile(self, user_id: str) -> UserProfile:
        """Raises NotFound when the user has no profile."""
        if not user_id:
            raise InvalidInput("user_id is required")
        raw = await self.store.get(join_path(USERS, user_id))
        return UserProfile.from_record(user_id, raw)

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        if not profile.id:
            raise InvalidInput("A profile needs an id")
        if profile.age < 18:
            raise InvalidInput("You must be at least 18 years old to create a profile.")
        if await self.store.get_or_none(join_path(USERS, profile.id)) is not None:
            raise InvalidInput("Profile already exists")
        now = self.clock()
        profile = profile.model_copy(update={"created_at": now, "last_seen": now, "is_online": True})
        await self.store.set(join_path(USERS, profile.id), profile.to_record())
        logger.info("profile_created", user_id=profile.id)
        return profile

    async def update_online_status(self, user_id: str, online: bool) -> None:
        if not user_id:
            raise InvalidInput("user_id is required")
        await self.store.update_fields(
            join_path(USERS, user_id), {"isOnline": online, "lastSeen": self.clock()}
        )

    async def update_profile_image(self, user_id: str, image_bytes: bytes) -> BlobImage:
        """Replace the primary image; the previous blob is removed best-effort."""
        blob_store = self._require_blob_store()
        profile = await self.get_profile(user_id)
        image = await blob_store.upload(user_id, image_bytes, ImageVariant.PROFILE)

        await self.store.update_fields(
            join_path(USERS, user_id),
            {"profileImageUrl": image.secure_url, "profileImagePublicId": image.public_id},
        )

        previous = profile.profile_image_public_id
        if previous and previous != image.public_id:
            await blob_store.delete(previous)
        logger.info("profile_image_updated", user_id=user_id, public_id=image.public_id)
        return image

    async def add_additional_image(self, user_id: str, image_bytes: bytes) -> List[BlobImage]:
        blob_store = self._require_blob_store()
        profile = await self.get_profile(user_id)
        image = await blob_store.upload(user_id, image_bytes, ImageVariant.ADDITIONAL)

        images = profile.additional_images + [image]
        await self.store.set(
            join_path(USERS, user_id, "additionalImages"), [img.to_record() for img in images]
        )
        return images
