from typing import List
import uuid
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.config.config import settings
from orthomonitor.core.security import get_current_patient
from orthomonitor.core.storage import StorageService, get_storage_service
from orthomonitor.core.utils import logger
from orthomonitor.models.patient_model import Patient
from orthomonitor.schemas.common_schemas import ImageType
from orthomonitor.schemas.scan_schemas import (
    ConfirmUploadSchema,
    ImageUrlResponseSchema,
    PatientScanSessionSchema,
    ScanImageResponseSchema,
    ScanIntakeSchema,
    ScanSessionResponseSchema,
    UploadUrlRequestSchema,
    UploadUrlResponseSchema,
)
from orthomonitor.services.scan_service import ScanService
from orthomonitor.services.upload_service import UploadService


router = APIRouter(prefix="/patient/scans", tags=["patient-portal"])


@router.get("", response_model=List[PatientScanSessionSchema])
async def list_my_scans(
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    """The patient's own scan sessions with images, newest first."""
    sessions = await ScanService(db).list_patient_sessions(current_patient)
    return [PatientScanSessionSchema.model_validate(s, from_attributes=True) for s in sessions]


@router.post(
    "/sessions",
    response_model=ScanSessionResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def start_scan_session(
    intake: ScanIntakeSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
):
    """
    Start a scan with the patient's self-report.

    Body: ``trayNumber`` (>= 1), ``alignerFit`` (1-3), ``wearTimeHrs``
    (0-24, optional), ``attachmentCheck`` and optional ``notes``.
    Numeric strings are accepted; unknown fields are rejected with 422.
    """
    scan_service = ScanService(db)

    try:
        session = await scan_service.create_intake_session(intake, current_patient)
        return ScanSessionResponseSchema.model_validate(session, from_attributes=True)

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "scan_intake_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "patient_id": str(current_patient.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while starting the scan",
        )


@router.post("/upload-url", response_model=UploadUrlResponseSchema)
async def get_upload_url(
    request_data: UploadUrlRequestSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    storage: StorageService = Depends(get_storage_service),
):
    session = await ScanService(db).get_session_for_patient(
        request_data.session_id, current_patient
    )
    result = await UploadService(db, storage).create_upload_url(session, request_data.image_type)
    return UploadUrlResponseSchema(**result)


@router.post(
    "/upload/confirm",
    response_model=ScanImageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_upload(
    confirm_data: ConfirmUploadSchema,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    storage: StorageService = Depends(get_storage_service),
):
    """Record an image the patient already PUT to the presigned URL."""
    session = await ScanService(db).get_session_for_patient(
        confirm_data.session_id, current_patient
    )
    image = await UploadService(db, storage).confirm_upload(
        session, confirm_data.image_type, confirm_data.key
    )
    return ScanImageResponseSchema.model_validate(image, from_attributes=True)


@router.post(
    "/upload",
    response_model=ScanImageResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    file: UploadFile = File(...),
    session_id: uuid.UUID = Form(..., alias="sessionId"),
    image_type: ImageType = Form(..., alias="imageType"),
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    storage: StorageService = Depends(get_storage_service),
):
    session = await ScanService(db).get_session_for_patient(session_id, current_patient)

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
                "event": "patient_image_upload_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "session_id": str(session_id),
                "patient_id": str(current_patient.id),
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
    current_patient: Patient = Depends(get_current_patient),
    storage: StorageService = Depends(get_storage_service),
):
    upload_service = UploadService(db, storage)
    image = await upload_service.get_image_for_patient(image_id, current_patient.id)
    return ImageUrlResponseSchema(url=await upload_service.get_image_url(image))


@router.get("/images/{image_id}/thumbnail-url", response_model=ImageUrlResponseSchema)
async def get_thumbnail_url(
    image_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_patient: Patient = Depends(get_current_patient),
    storage: StorageService = Depends(get_storage_service),
):
    upload_service = UploadService(db, storage)
    image = await upload_service.get_image_for_patient(image_id, current_patient.id)
    return ImageUrlResponseSchema(url=await upload_service.get_thumbnail_url(image))
