from typing import Any, Dict
from fastapi import APIRouter
from orthomonitor.core import constants
from orthomonitor.core.discount import tiers_as_dicts


router = APIRouter(prefix="/meta", tags=["meta"])


def build_constants() -> Dict[str, Any]:
    """Lookup tables shared by the clinic dashboard and the patient portal."""
    return {
        "tagScores": dict(constants.TAG_SCORES),
        "tagLabels": {str(k): v for k, v in constants.TAG_LABELS.items()},
        "tagColors": {str(k): v for k, v in constants.TAG_COLORS.items()},
        "tagCategories": dict(constants.TAG_CATEGORIES),
        "detailTagOptions": list(constants.DETAIL_TAG_OPTIONS),
        "imageTypeLabels": dict(constants.IMAGE_TYPE_LABELS),
        "attachmentCheckLabels": dict(constants.ATTACHMENT_CHECK_LABELS),
        "statusLabels": dict(constants.STATUS_LABELS),
        "statusColors": dict(constants.STATUS_COLORS),
        "wearTimeFitScores": sorted(constants.WEAR_TIME_FIT_SCORES),
        "maxReportNotesLength": constants.MAX_REPORT_NOTES_LENGTH,
        "discountTiers": tiers_as_dicts(),
    }


@router.get("/constants")
async def get_constants():
    return build_constants()
