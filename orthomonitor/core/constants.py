"""
Tag, label and colour tables shared by the clinic dashboard and the patient
portal. Served as-is from ``GET /meta/constants``.
"""

from orthomonitor.schemas.common_schemas import (
    AttachmentCheck,
    ImageType,
    PatientStatus,
    ScanStatus,
)

TAG_SCORES = {
    "GOOD": 1,
    "FAIR": 2,
    "POOR": 3,
}

TAG_LABELS = {
    TAG_SCORES["GOOD"]: "Good",
    TAG_SCORES["FAIR"]: "Fair",
    TAG_SCORES["POOR"]: "Poor",
}

TAG_COLORS = {
    TAG_SCORES["GOOD"]: "bg-tag-green text-white",
    TAG_SCORES["FAIR"]: "bg-tag-yellow text-black",
    TAG_SCORES["POOR"]: "bg-tag-red text-white",
}

TAG_CATEGORIES = {
    "OVERALL_TRACKING": "overallTracking",
    "ALIGNER_FIT": "alignerFit",
    "ORAL_HYGIENE": "oralHygiene",
}

DETAIL_TAG_OPTIONS = (
    "Attachment missing",
    "Aligner not seating",
    "Spacing issue",
    "Crowding",
    "Open bite",
    "Crossbite",
    "Gingival inflammation",
    "Plaque buildup",
    "Decalcification",
    "Elastic wear compliance",
    "IPR needed",
    "Refinement needed",
)

IMAGE_TYPE_LABELS = {
    ImageType.FRONT.value: "Front",
    ImageType.LEFT.value: "Left",
    ImageType.RIGHT.value: "Right",
    ImageType.UPPER_OCCLUSAL.value: "Upper Occlusal",
    ImageType.LOWER_OCCLUSAL.value: "Lower Occlusal",
}

ATTACHMENT_CHECK_LABELS = {
    AttachmentCheck.ALL_PRESENT.value: "All present",
    AttachmentCheck.SOME_MISSING.value: "Some missing",
    AttachmentCheck.UNSURE.value: "Unsure",
}

STATUS_LABELS = {
    PatientStatus.ACTIVE.value: "Active",
    PatientStatus.PAUSED.value: "Paused",
    PatientStatus.COMPLETED.value: "Completed",
    PatientStatus.DROPPED.value: "Dropped",
    ScanStatus.PENDING.value: "Pending",
    ScanStatus.REVIEWED.value: "Reviewed",
    ScanStatus.FLAGGED.value: "Flagged",
}

STATUS_COLORS = {
    PatientStatus.ACTIVE.value: "bg-green-100 text-green-800",
    PatientStatus.PAUSED.value: "bg-yellow-100 text-yellow-800",
    PatientStatus.COMPLETED.value: "bg-blue-100 text-blue-800",
    PatientStatus.DROPPED.value: "bg-gray-100 text-gray-800",
    ScanStatus.PENDING.value: "bg-orange-100 text-orange-800",
    ScanStatus.REVIEWED.value: "bg-green-100 text-green-800",
    ScanStatus.FLAGGED.value: "bg-red-100 text-red-800",
}

# Wear time is only asked for when the patient reports a Fair or Poor fit.
WEAR_TIME_FIT_SCORES = frozenset({TAG_SCORES["FAIR"], TAG_SCORES["POOR"]})

MAX_REPORT_NOTES_LENGTH = 1000
MESSAGE_PREVIEW_LENGTH = 100
