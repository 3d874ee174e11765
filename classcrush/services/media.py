"""
Blob Store collaborator: image upload and best-effort deletion.

Cloudinary does the resizing at upload time; thumbnail and medium URLs are
derived transformations of the same public id, so nothing extra is stored.
"""

from __future__ import annotations

import abc
import io
import enum
from typing import Dict, Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
import structlog
from fastapi.concurrency import run_in_threadpool

from classcrush.config import settings
from classcrush.core.errors import InvalidInput, Unavailable
from classcrush.models.base import now_millis
from classcrush.models.user import BlobImage

logger = structlog.get_logger(__name__)


class ImageVariant(str, enum.Enum):
    PROFILE = "profile"
    ADDITIONAL = "additional"
    CHAT = "chat"


# Folder and upload-time transformation per variant.
_VARIANT_OPTIONS: Dict[ImageVariant, dict] = {
    ImageVariant.PROFILE: {
        "folder": "profile_images",
        "width": 800,
        "height": 800,
        "crop": "fill",
        "gravity": "face",
    },
    ImageVariant.ADDITIONAL: {
        "folder": "additional_images",
        "width": 600,
        "height": 800,
        "crop": "fill",
        "gravity": "auto",
    },
    ImageVariant.CHAT: {
        "folder": "chat_images",
        "width": 1200,
        "height": 1200,
        "crop": "limit",
    },
}


class BlobStore(abc.ABC):
    """Accepts an image and returns stable URLs plus a public id."""

    @abc.abstractmethod
    async def upload(self, owner_id: str, image_bytes: bytes, variant: ImageVariant) -> BlobImage:
        ...

    @abc.abstractmethod
    async def delete(self, public_id: str) -> bool:
        """Best-effort removal. Never raises; returns whether it succeeded."""


class CloudinaryBlobStore(BlobStore):
    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        root_folder: Optional[str] = None,
    ) -> None:
        cloudinary.config(
            cloud_name=cloud_name or settings.CLOUDINARY_CLOUD_NAME,
            api_key=api_key or settings.CLOUDINARY_API_KEY,
            api_secret=api_secret or settings.CLOUDINARY_API_SECRET,
            secure=True,
        )
        self.root_folder = root_folder or settings.CLOUDINARY_ROOT_FOLDER

    @staticmethod
    def _derived_url(public_id: str, size: int) -> str:
        url, _ = cloudinary.utils.cloudinary_url(
            public_id,
            width=size,
            height=size,
            crop="fill",
            quality="auto",
            fetch_format="auto",
            secure=True,
        )
        return url

    async def upload(self, owner_id: str, image_bytes: bytes, variant: ImageVariant) -> BlobImage:
        if not owner_id:
            raise InvalidInput("owner_id is required for upload")
        if not image_bytes:
            raise InvalidInput("Image is empty")

        options = dict(_VARIANT_OPTIONS[variant])
        folder = f"{self.root_folder}/{options.pop('folder')}"
        public_id = f"{folder}/{owner_id}_{now_millis()}"

        log = logger.bind(owner_id=owner_id, variant=variant.value)
        try:
            result = await run_in_threadpool(
                cloudinary.uploader.upload,
                io.BytesIO(image_bytes),
                public_id=public_id,
                overwrite=True,
                resource_type="image",
                quality="auto:good",
                format="jpg",
                **options,
            )
        except cloudinary.exceptions.Error as e:
            log.warning("image_upload_failed", error=str(e))
            raise Unavailable(f"Image upload failed: {e}") from e

        secure_url = result.get("secure_url")
        stored_id = result.get("public_id")
        if not secure_url or not stored_id:
            raise Unavailable("Invalid response from Cloudinary: missing URL or public ID")

        log.info("image_uploaded", public_id=stored_id)
        return BlobImage(
            public_id=stored_id,
            secure_url=secure_url,
            thumbnail_url=self._derived_url(stored_id, 150),
            medium_url=self._derived_url(stored_id, 400),
        )

    async def delete(self, public_id: str) -> bool:
        if not public_id:
            return False
        try:
            result = await run_in_threadpool(cloudinary.uploader.destroy, public_id)
        except cloudinary.exceptions.Error as e:
            # Orphaned blobs are an accepted cost.
            logger.warning("image_delete_failed", public_id=public_id, error=str(e))
            return False
        ok = result.get("result") == "ok"
        if not ok:
            logger.warning("image_delete_not_ok", public_id=public_id, result=result.get("result"))
        return ok
