import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from orthomonitor.schemas.common_schemas import APIModel


class FeedItemType(str, Enum):
    SCAN_SESSION = "scan_session"
    MESSAGE = "message"
    TAG_SUBMISSION = "tag_submission"


class FeedItemSchema(APIModel):
    type: FeedItemType
    id: uuid.UUID
    date: datetime
    data: Dict[str, Any]


class OverduePatientSchema(APIModel):
    id: uuid.UUID
    name: str
    days_since_last_scan: Optional[int] = None


class ComplianceStatsSchema(APIModel):
    total_active: int
    on_time_count: int
    overdue_count: int
    compliance_percentage: float
    overdue_patients: List[OverduePatientSchema] = []


class TaggingRateSchema(APIModel):
    total_sessions: int
    tagged_sessions: int
    tagging_rate: float
    period_days: int


class DashboardSummarySchema(APIModel):
    pending_scans: int
    total_patients: int
    compliance_percentage: float
    tagging_rate: float
