import uuid
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.config.config import settings
from orthomonitor.core.security import get_current_user
from orthomonitor.core.storage import StorageService, get_storage_service
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import ImageType
from orthomonitor.schemas.scan_schemas import (
    ConfirmUploadSchema,
    ImageUrlResponseSchema,
    ScanImageResponseSchema,
    UploadUrlRequestSchema,
    UploadUrlResponseSchema,
)
from orthomonitor.services.scan_service import ScanService
from orthomonitor.services.upload_service import UploadService


router = APIRouter(prefix="/scans/upload", tags=["scans"])


@router.post("/upload-url", response_model=UploadUrlResponseSchema)
async def get_upload_url(
    request_data: UploadUrlRequestSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
):
    """Reserve a storage key and return where to PUT the image."""
    session = await ScanService(db).get_session_in_practice(request_data.session_id, current_user)

    try:
        result = await UploadService(db, storage).create_upload_url(
            session, request_data.image_type
        )
        return UploadUrlResponseSchema(**result)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "upload_url_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(request_data.session_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not generate an upload URL",
        )


@router.post(
    "/confirm",
    response_model=ScanImageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_upload(
    confirm_data: ConfirmUploadSchema,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
):
    session = await ScanService(db).get_session_in_practice(confirm_data.session_id, current_user)
    image = await UploadService(db, storage).confirm_upload(
        session, confirm_data.image_type, confirm_data.key
    )
    return ScanImageResponseSchema.model_validate(image, from_attributes=True)


@router.post(
    "",
    response_model=ScanImageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    file: UploadFile = File(...),
    session_id: uuid.UUID = Form(..., alias="sessionId"),
    image_type: ImageType = Form(..., alias="imageType"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
):
    """
    Upload an image file for a session (multipart ``file``, ``sessionId``,
    ``imageType``).

    Raises:
        HTTPException: 404 unknown session, 400 non-image, 413 too large
    """
    session = await ScanService(db).get_session_in_practice(session_id, current_user)

    try:
        body = await file.read(settings.MAX_UPLOAD_BYTES + 1)
        image = await UploadService(db, storage).upload_file(
            session,
            image_type,
            body,
            filename=file.filename,
            content_type=file.content_type,
        )
        return ScanImageResponseSchema.model_validate(image, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "scan_image_upload_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(session_id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while uploading the image",
        )

    finally:
        await file.close()


@router.get("/images/{image_id}/url", response_model=ImageUrlResponseSchema)
async def get_image_url(
    image_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
):
    upload_service = UploadService(db, storage)
    image = await upload_service.get_image_for_practice(image_id, current_user.practice_id)
    return ImageUrlResponseSchema(url=await upload_service.get_image_url(image))


@router.get("/images/{image_id}/thumbnail-url", response_model=ImageUrlResponseSchema)
async def get_thumbnail_url(
    image_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
):
    upload_service = UploadService(db, storage)
    image = await upload_service.get_image_for_practice(image_id, current_user.practice_id)
    return ImageUrlResponseSchema(url=await upload_service.get_thumbnail_url(image))
