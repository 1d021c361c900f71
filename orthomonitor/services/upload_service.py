"""
Scan image intake.

Images reach storage out of band: either the client PUTs to a presigned URL
and then confirms the key, or it posts the file as multipart and the API
stores it (in the bucket, or under ``UPLOAD_DIR`` when no bucket is
configured). Either way the ``ScanImage`` row and the session's
``image_count`` bump are committed together. Thumbnails are best effort.
"""

import os
import posixpath
import time
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.config.config import settings
from orthomonitor.core.storage import StorageService
from orthomonitor.core.thumbnails import ThumbnailService
from orthomonitor.core.utils import logger
from orthomonitor.models.scan_model import ScanImage, ScanSession
from orthomonitor.repositories.scan_repo import ScanRepository
from orthomonitor.schemas.common_schemas import ImageType

LOCAL_UPLOAD_URL_PREFIX = "/uploads"
DEFAULT_EXTENSION = "jpg"
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "heic"}


def extension_for(filename: Optional[str], content_type: Optional[str] = None) -> str:
    ext = posixpath.splitext(filename or "")[1].lstrip(".").lower()
    if ext in ALLOWED_EXTENSIONS:
        return ext
    if content_type and content_type.startswith("image/"):
        subtype = content_type.split("/", 1)[1].lower()
        if subtype in ALLOWED_EXTENSIONS:
            return subtype
    return DEFAULT_EXTENSION


def local_url(path: str) -> str:
    return f"{LOCAL_UPLOAD_URL_PREFIX}/{os.path.basename(path)}"


class UploadService:

    def __init__(self, db: AsyncSession, storage: StorageService):
        self.db = db
        self.repo = ScanRepository(self.db)
        self.storage = storage
        self.thumbnails = ThumbnailService(storage)

    async def create_upload_url(self, session: ScanSession, image_type: ImageType) -> dict:
        """
        Reserve a storage key for one view of ``session``.

        Returns:
            ``{"url", "key"}``; the url is a presigned PUT when a bucket is
            configured and the local upload path otherwise.
        """
        key = self.storage.build_key(session.id, image_type.value.lower(), DEFAULT_EXTENSION)

        if self.storage.is_cloud_enabled():
            url = await self.storage.generate_upload_url(key, "image/jpeg")
        else:
            url = f"{LOCAL_UPLOAD_URL_PREFIX}/{key}"

        logger.log_info(
            {
                "event": "upload_url_issued",
                "session_id": str(session.id),
                "image_type": image_type.value,
                "cloud": self.storage.is_cloud_enabled(),
            }
        )
        return {"url": url, "key": key}

    async def confirm_upload(
        self, session: ScanSession, image_type: ImageType, key: str
    ) -> ScanImage:
        """Record an object the client already PUT to the bucket."""
        if not key.startswith(f"scans/{session.id}/"):
            logger.log_security_event(
                {
                    "event": "upload_confirm_rejected",
                    "reason": "key_outside_session",
                    "session_id": str(session.id),
                    "key": key,
                }
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Key does not belong to this scan session",
            )

        thumbnail_key = None
        if self.storage.is_cloud_enabled():
            thumbnail_key = await self.thumbnails.generate_and_store_cloud(key)

        image = await self.repo.add_image(
            session_id=session.id,
            image_type=image_type,
            s3_key=key,
            thumbnail_key=thumbnail_key,
        )
        logger.log_info(
            {
                "event": "scan_image_confirmed",
                "session_id": str(session.id),
                "image_id": str(image.id),
                "image_type": image_type.value,
            }
        )
        return image

    async def upload_file(
        self,
        session: ScanSession,
        image_type: ImageType,
        body: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> ScanImage:
        """
        Store an uploaded file and record it.

        Raises:
            HTTPException: 400 empty or non-image file, 413 over ``MAX_UPLOAD_BYTES``
        """
        if not body:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Uploaded file is empty",
            )

        if len(body) > settings.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte limit",
            )

        if content_type and not content_type.startswith("image/"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only image uploads are accepted",
            )

        ext = extension_for(filename, content_type)
        s3_key: Optional[str] = None
        local_path: Optional[str] = None

        if self.storage.is_cloud_enabled():
            s3_key = self.storage.build_key(session.id, image_type.value.lower(), ext)
            await self.storage.put_object(s3_key, body, content_type or f"image/{ext}")
        else:
            name = f"{session.id}-{image_type.value.lower()}-{int(time.time() * 1000)}.{ext}"
            local_path = await self.storage.save_local(name, body)

        thumbnail_key = await self.thumbnails.generate_and_store_from_buffer(
            body, s3_key=s3_key, local_path=local_path
        )

        image = await self.repo.add_image(
            session_id=session.id,
            image_type=image_type,
            s3_key=s3_key,
            local_path=local_path,
            thumbnail_key=thumbnail_key,
        )
        logger.log_info(
            {
                "event": "scan_image_uploaded",
                "session_id": str(session.id),
                "image_id": str(image.id),
                "image_type": image_type.value,
                "bytes": len(body),
                "thumbnail": thumbnail_key is not None,
            }
        )
        return image

    async def get_image_url(self, image: ScanImage) -> Optional[str]:
        if image.s3_key and self.storage.is_cloud_enabled():
            return await self.storage.generate_download_url(image.s3_key)
        if image.local_path:
            return local_url(image.local_path)
        return None

    async def get_thumbnail_url(self, image: ScanImage) -> Optional[str]:
        if not image.thumbnail_key:
            return None
        if os.path.isabs(image.thumbnail_key):
            return local_url(image.thumbnail_key)
        if self.storage.is_cloud_enabled():
            return await self.storage.generate_download_url(image.thumbnail_key)
        return None

    async def read_image_bytes(self, image: ScanImage) -> Optional[bytes]:
        """Raw bytes of a stored image, or ``None`` when it cannot be read."""
        try:
            if image.s3_key and self.storage.is_cloud_enabled():
                return await self.storage.get_object(image.s3_key)
            if image.local_path:
                return await self.storage.read_local(image.local_path)
        except Exception as e:
            logger.log_warning(
                {
                    "event": "scan_image_read_failed",
                    "image_id": str(image.id),
                    "error": str(e),
                }
            )
        return None

    async def get_image_for_practice(self, image_id, practice_id) -> ScanImage:
        image = await self.repo.get_image_in_practice(image_id, practice_id)
        if not image:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Image with ID '{image_id}' not found",
            )
        return image

    async def get_image_for_patient(self, image_id, patient_id) -> ScanImage:
        image = await self.repo.get_image_for_patient(image_id, patient_id)
        if not image:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Image with ID '{image_id}' not found",
            )
        return image
