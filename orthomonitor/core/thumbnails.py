import io
import os
import posixpath
from typing import Optional, Tuple
from fastapi.concurrency import run_in_threadpool
from PIL import Image
from orthomonitor.core.storage import StorageService
from orthomonitor.core.utils import LoggerMixin

THUMBNAIL_SIZE: Tuple[int, int] = (300, 300)
THUMBNAIL_QUALITY = 75


def generate_thumbnail(image_content: bytes, max_size: Tuple[int, int] = THUMBNAIL_SIZE) -> bytes:
    """Downscale to fit inside ``max_size`` (never upscales) and encode as WebP."""
    image = Image.open(io.BytesIO(image_content))
    image.thumbnail(max_size)

    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "transparency" in image.info else "RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=THUMBNAIL_QUALITY)
    return buffer.getvalue()


def build_thumbnail_key(original_key: str) -> str:
    directory, filename = posixpath.split(original_key)
    stem = posixpath.splitext(filename)[0]
    return posixpath.join(directory, f"{stem}-thumb.webp")


class ThumbnailService(LoggerMixin):
    """Best-effort thumbnails; every failure is logged and reported as ``None``."""

    def __init__(self, storage: StorageService):
        self.storage = storage

    async def generate_and_store_cloud(self, original_key: str) -> Optional[str]:
        try:
            image_content = await self.storage.get_object(original_key)
            thumb = await run_in_threadpool(generate_thumbnail, image_content)
            thumbnail_key = build_thumbnail_key(original_key)
            await self.storage.put_object(thumbnail_key, thumb, "image/webp")
            return thumbnail_key
        except Exception as e:
            self.log_warning(
                {
                    "event": "thumbnail_generation_failed",
                    "key": original_key,
                    "error": str(e),
                }
            )
            return None

    async def generate_and_store_from_buffer(
        self,
        image_content: bytes,
        s3_key: Optional[str] = None,
        local_path: Optional[str] = None,
    ) -> Optional[str]:
        try:
            thumb = await run_in_threadpool(generate_thumbnail, image_content)

            if s3_key and self.storage.is_cloud_enabled():
                thumbnail_key = build_thumbnail_key(s3_key)
                await self.storage.put_object(thumbnail_key, thumb, "image/webp")
                return thumbnail_key

            if local_path:
                stem = os.path.splitext(os.path.basename(local_path))[0]
                return await self.storage.save_local(f"{stem}-thumb.webp", thumb)

            return None
        except Exception as e:
            self.log_warning(
                {
                    "event": "thumbnail_generation_failed",
                    "key": s3_key or local_path,
                    "error": str(e),
                }
            )
            return None
