from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_user
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.repositories.dashboard_repo import DashboardRepository
from orthomonitor.schemas.dashboard_schemas import (
    ComplianceStatsSchema,
    DashboardSummarySchema,
    FeedItemSchema,
    TaggingRateSchema,
)


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


# ============= Activity Feed =============
@router.get("/feed", response_model=List[FeedItemSchema])
async def get_activity_feed(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Recent practice activity, newest first.

    Merges the latest 20 scan sessions, 10 messages and 10 tag submissions.
    """
    repo = DashboardRepository(db)

    try:
        items = await repo.get_activity_feed(current_user.practice_id)
        return [FeedItemSchema(**item) for item in items]

    except Exception as e:
        logger.log_error(
            {
                "event": "dashboard_feed_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while fetching the activity feed",
        )


# ============= Compliance =============
@router.get("/compliance", response_model=ComplianceStatsSchema)
async def get_compliance(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Active patients on time vs overdue for their scan frequency."""
    repo = DashboardRepository(db)

    try:
        stats = await repo.get_compliance_stats(current_user.practice_id)

        logger.log_info(
            {
                "event": "dashboard_compliance_fetched",
                "practice_id": str(current_user.practice_id),
                "compliance_percentage": stats["compliance_percentage"],
            }
        )
        return ComplianceStatsSchema(**stats)

    except Exception as e:
        logger.log_error(
            {
                "event": "dashboard_compliance_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while fetching compliance statistics",
        )


# ============= Tagging Rate =============
@router.get("/tagging-rate", response_model=TaggingRateSchema)
async def get_tagging_rate(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    repo = DashboardRepository(db)

    try:
        return TaggingRateSchema(**await repo.get_tagging_rate(current_user.practice_id))

    except Exception as e:
        logger.log_error(
            {
                "event": "dashboard_tagging_rate_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while fetching the tagging rate",
        )


# ============= Summary =============
@router.get("/summary", response_model=DashboardSummarySchema)
async def get_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    repo = DashboardRepository(db)

    try:
        return DashboardSummarySchema(**await repo.get_summary(current_user.practice_id))

    except Exception as e:
        logger.log_error(
            {
                "event": "dashboard_summary_error",
                "error": str(e),
                "error_type": type(e).__name__,
                "user_id": str(current_user.id),
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while fetching the dashboard summary",
        )
