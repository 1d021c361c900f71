import os
import time
import uuid
from typing import Any, Optional
import boto3
from fastapi.concurrency import run_in_threadpool
from orthomonitor.config.config import settings
from orthomonitor.core.utils import LoggerMixin


class StorageNotConfiguredError(RuntimeError):
    pass


class StorageService(LoggerMixin):
    """
    Scan image storage.

    Uses an S3-compatible bucket when endpoint and credentials are configured,
    otherwise falls back to ``settings.UPLOAD_DIR`` on the local filesystem.
    boto3 is synchronous, so bucket calls are pushed onto the threadpool.
    """

    def __init__(self, client: Any = None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.S3_BUCKET
        self.upload_dir = settings.UPLOAD_DIR

        if client is not None:
            self.s3_client = client
        elif settings.storage_configured:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                region_name=settings.S3_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            )
        else:
            self.s3_client = None

    def is_cloud_enabled(self) -> bool:
        return self.s3_client is not None

    def _require_client(self) -> Any:
        if self.s3_client is None:
            raise StorageNotConfiguredError("Cloud storage is not configured")
        return self.s3_client

    @staticmethod
    def build_key(session_id: uuid.UUID, image_type: str, ext: str) -> str:
        return f"scans/{session_id}/{image_type}-{int(time.time() * 1000)}.{ext}"

    async def generate_upload_url(self, key: str, content_type: str) -> str:
        client = self._require_client()
        return await run_in_threadpool(
            client.generate_presigned_url,
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=settings.UPLOAD_URL_EXPIRE_SECONDS,
        )

    async def generate_download_url(self, key: str) -> str:
        client = self._require_client()
        return await run_in_threadpool(
            client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=settings.DOWNLOAD_URL_EXPIRE_SECONDS,
        )

    async def put_object(self, key: str, body: bytes, content_type: str) -> None:
        client = self._require_client()
        await run_in_threadpool(
            client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )
        self.log_debug({"event": "storage_object_written", "key": key, "bytes": len(body)})

    async def get_object(self, key: str) -> bytes:
        client = self._require_client()
        response = await run_in_threadpool(client.get_object, Bucket=self.bucket, Key=key)
        return await run_in_threadpool(response["Body"].read)

    async def save_local(self, filename: str, body: bytes) -> str:
        """Write ``body`` under the upload directory and return its absolute path."""
        directory = os.path.abspath(self.upload_dir)
        path = os.path.join(directory, os.path.basename(filename))

        def _write() -> None:
            os.makedirs(directory, exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(body)

        await run_in_threadpool(_write)
        self.log_debug({"event": "storage_local_file_written", "path": path, "bytes": len(body)})
        return path

    async def read_local(self, path: str) -> bytes:
        def _read() -> bytes:
            with open(path, "rb") as fh:
                return fh.read()

        return await run_in_threadpool(_read)


_storage: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """FastAPI dependency returning the process-wide storage service."""
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage
