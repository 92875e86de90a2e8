"""
Profile image uploads.

Validates an uploaded image, stores it through a BlobStore and points the
user's avatar_url at the stored blob.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional

from arena.config import Config
from arena.data_models.profile import ProfilePatch
from arena.utils.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

PROFILE_IMAGE_PREFIX = "profileImages"


class BlobStore(ABC):
    """Minimal blob storage interface: store bytes, resolve a public URL."""

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Store data at path and return a reference to it"""

    @abstractmethod
    async def get_download_url(self, ref: str) -> str:
        """Public URL for a stored reference"""


class LocalBlobStore(BlobStore):
    """BlobStore backed by a local directory."""

    def __init__(self, base_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or Config.BLOB_STORAGE_DIR)
        self.base_url = (base_url or Config.BLOB_PUBLIC_BASE_URL).rstrip('/')

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or '..' in relative.parts:
            raise ValidationError(f"Invalid blob path: {path}", "Invalid file name.")
        return self.base_dir.joinpath(*relative.parts)

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as e:
            raise StorageError("blob upload", str(e)) from e
        logger.debug(f"Stored {len(data)} bytes at {target}")
        return path

    async def get_download_url(self, ref: str) -> str:
        return f"{self.base_url}/{ref}"


class ProfileImageService:
    """Uploads profile images and updates the owner's avatar."""

    def __init__(self, profile_service, blob_store: BlobStore):
        self.profile_service = profile_service
        self.blob_store = blob_store

    @staticmethod
    def validate_profile_image(content_type: Optional[str], size: int):
        """
        Reject non-image content types and files over the size limit.

        Raises:
            ValidationError: If the file cannot be used as a profile image
        """
        if not content_type or not content_type.startswith('image/'):
            raise ValidationError(
                f"Unsupported profile image content type: {content_type}",
                "Please upload an image file."
            )
        if size > Config.PROFILE_IMAGE_MAX_BYTES:
            limit_mb = Config.PROFILE_IMAGE_MAX_BYTES // (1024 * 1024)
            raise ValidationError(
                f"Profile image is {size} bytes, limit is {Config.PROFILE_IMAGE_MAX_BYTES}",
                f"Image size should be less than {limit_mb}MB."
            )

    @staticmethod
    def blob_path(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
        """profileImages/{user_id}_{epoch_ms}.{ext}"""
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        ext = PurePosixPath(filename or "").suffix.lstrip('.') or 'img'
        return f"{PROFILE_IMAGE_PREFIX}/{user_id}_{timestamp_ms}.{ext}"

    async def upload_profile_image(self, user_id: str, filename: str, content_type: str, data: bytes) -> str:
        """
        Store a new profile image and set it as the user's avatar.

        Returns:
            Public URL of the stored image
        """
        self.validate_profile_image(content_type, len(data))

        path = self.blob_path(user_id, filename)
        ref = await self.blob_store.upload(path, data)
        url = await self.blob_store.get_download_url(ref)

        await self.profile_service.update_user_profile(
            user_id, ProfilePatch(avatar_url=url), acting_user_id=user_id
        )
        logger.info(f"Uploaded profile image for {user_id}: {url}")
        return url
