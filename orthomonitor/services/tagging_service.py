"""
Tagging Service

Clinician review of scan sessions: storing tag sets, reconciling them against
an AI suggestion the doctor was shown, asking the model for a suggestion, and
the practice's tagging-rate analytics that drive its billing discount.
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.config.config import settings
from orthomonitor.core.ai import AiResponseError, AiService, media_type_for
from orthomonitor.core.discount import discount_for_rate
from orthomonitor.core.utils import logger
from orthomonitor.db.base import utcnow
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.models.tagging_model import TagSet
from orthomonitor.models.user_model import User
from orthomonitor.repositories.practice_repo import PracticeRepository
from orthomonitor.repositories.scan_repo import ScanRepository
from orthomonitor.repositories.tagging_repo import TagSetRepository
from orthomonitor.schemas.tagging_schemas import TagSetCreateSchema, TagSuggestionSchema
from orthomonitor.services.upload_service import UploadService


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def differs_from_suggestion(tags: TagSetCreateSchema, suggestion: TagSuggestionSchema) -> bool:
    """
    True when the submitted tags changed anything the AI proposed.

    Detail tags compare as sets; empty action/notes equal a missing one.
    """
    return (
        tags.overall_tracking != suggestion.overall_tracking
        or tags.aligner_fit != suggestion.aligner_fit
        or tags.oral_hygiene != suggestion.oral_hygiene
        or set(tags.detail_tags) != set(suggestion.detail_tags)
        or _blank_to_none(tags.action_taken) != _blank_to_none(suggestion.action_taken)
        or _blank_to_none(tags.notes) != _blank_to_none(suggestion.notes)
    )


def resolve_ai_flags(tags: TagSetCreateSchema) -> Tuple[bool, bool, Optional[float]]:
    """
    Returns:
        (ai_suggested, ai_overridden, ai_confidence) to persist. With the
        suggestion echoed back the override flag is derived; otherwise the
        client's flags are kept.
    """
    if tags.suggestion is None:
        return tags.ai_suggested, tags.ai_overridden, tags.ai_confidence

    confidence = (
        tags.ai_confidence if tags.ai_confidence is not None else tags.suggestion.confidence
    )
    return True, differs_from_suggestion(tags, tags.suggestion), confidence


class TaggingService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = TagSetRepository(self.db)
        self.scan_repo = ScanRepository(self.db)
        self.practice_repo = PracticeRepository(self.db)

    async def _get_practice_session(
        self, session_id: uuid.UUID, current_user: User
    ) -> ScanSession:
        """
        Raises:
            HTTPException: 404 unknown session, 403 session of another practice
        """
        session = await self.scan_repo.get_session_by_id(session_id)
        if not session:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Scan session with ID '{session_id}' not found",
            )

        if session.patient.practice_id != current_user.practice_id:
            logger.log_security_event(
                {
                    "event": "cross_practice_access_denied",
                    "resource": "scan_session",
                    "session_id": str(session_id),
                    "user_id": str(current_user.id),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this scan session",
            )
        return session

    async def save_tags(
        self, session_id: uuid.UUID, tags: TagSetCreateSchema, current_user: User
    ) -> TagSet:
        """
        Store the doctor's tags for a session and mark it REVIEWED.

        A session holds one tag set; tagging it again overwrites the previous
        one.
        """
        session = await self._get_practice_session(session_id, current_user)
        ai_suggested, ai_overridden, ai_confidence = resolve_ai_flags(tags)

        tag_data: Dict[str, Any] = {
            "overall_tracking": tags.overall_tracking,
            "aligner_fit": tags.aligner_fit,
            "oral_hygiene": tags.oral_hygiene,
            "detail_tags": list(tags.detail_tags),
            "action_taken": tags.action_taken,
            "notes": tags.notes,
            "ai_suggested": ai_suggested,
            "ai_overridden": ai_overridden,
            "ai_confidence": ai_confidence,
        }
        replaced = session.tag_set is not None
        tag_set = await self.repo.save_review(session, current_user.id, tag_data)

        logger.log_info(
            {
                "event": "tag_set_saved",
                "session_id": str(session_id),
                "tag_set_id": str(tag_set.id),
                "tagged_by": str(current_user.id),
                "replaced": replaced,
                "ai_suggested": ai_suggested,
                "ai_overridden": ai_overridden,
            }
        )
        return tag_set

    async def get_tags(self, session_id: uuid.UUID, current_user: User) -> TagSet:
        await self._get_practice_session(session_id, current_user)
        tag_set = await self.repo.get_by_session(session_id)
        if not tag_set:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No tags found for scan session '{session_id}'",
            )
        return tag_set

    async def list_my_tags(self, current_user: User) -> List[TagSet]:
        return await self.repo.list_by_tagger(current_user.id)

    async def suggest_tags(
        self,
        session_id: uuid.UUID,
        current_user: User,
        ai_service: AiService,
        upload_service: UploadService,
    ) -> Dict[str, Any]:
        """
        Ask the model to tag a session from its stored images.

        Raises:
            HTTPException: 501 AI not configured, 404/403 session, 404 no
                readable images, 502 unusable model reply
        """
        if not ai_service.is_enabled():
            raise HTTPException(
                status_code=status.HTTP_501_NOT_IMPLEMENTED,
                detail="AI suggestions are not configured",
            )

        session = await self._get_practice_session(session_id, current_user)

        images: List[Tuple[str, bytes]] = []
        for image in session.images:
            data = await upload_service.read_image_bytes(image)
            if data:
                images.append((media_type_for(image.s3_key or image.local_path or ""), data))

        if not images:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No images available for AI analysis in this session",
            )

        try:
            suggestion = await ai_service.analyze_scan_images(images)
        except AiResponseError as e:
            logger.log_warning(
                {
                    "event": "ai_suggestion_unusable",
                    "session_id": str(session_id),
                    "error": str(e),
                }
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="AI returned an unusable response",
            )

        logger.log_info(
            {
                "event": "ai_suggestion_served",
                "session_id": str(session_id),
                "requested_by": str(current_user.id),
            }
        )
        return suggestion

    async def get_analytics(self, current_user: User) -> Dict[str, Any]:
        """
        Tagging rate over the last ``TAGGING_PERIOD_DAYS`` days and the
        discount it earns. Both are written back onto the practice.
        """
        period_days = settings.TAGGING_PERIOD_DAYS
        since = utcnow() - timedelta(days=period_days)
        total, tagged = await self.repo.count_sessions_since(current_user.practice_id, since)

        raw_rate = tagged / total * 100 if total else 0.0
        discount_percent = discount_for_rate(raw_rate)
        tagging_rate = round(raw_rate, 2)

        practice = await self.practice_repo.get_practice_by_id(current_user.practice_id)
        if practice:
            await self.practice_repo.save_billing(practice, tagging_rate, discount_percent)

        logger.log_info(
            {
                "event": "tagging_analytics_computed",
                "practice_id": str(current_user.practice_id),
                "tagging_rate": tagging_rate,
                "discount_percent": discount_percent,
            }
        )
        return {
            "tagging_rate": tagging_rate,
            "discount_percent": discount_percent,
            "total_sessions": total,
            "tagged_sessions": tagged,
            "period": f"{period_days}d",
        }
