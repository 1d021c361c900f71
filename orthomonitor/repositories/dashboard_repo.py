"""
Dashboard Repository

Read-only aggregate queries for the clinic dashboard. Every query is scoped
to one practice; results are plain dicts shaped for the dashboard schemas.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.config.config import settings
from orthomonitor.db.base import as_utc, utcnow
from orthomonitor.models.message_model import Message, MessageThread
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.models.tagging_model import TagSet
from orthomonitor.repositories.tagging_repo import TagSetRepository
from orthomonitor.schemas.common_schemas import PatientStatus, ScanStatus
from orthomonitor.schemas.dashboard_schemas import FeedItemType

FEED_SESSION_LIMIT = 20
FEED_MESSAGE_LIMIT = 10
FEED_TAG_LIMIT = 10


def _percentage(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part / whole * 100, 2)


class DashboardRepository:
    """Repository for dashboard analytics queries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============= Activity feed =============
    async def get_activity_feed(self, practice_id: uuid.UUID) -> List[Dict[str, Any]]:
        """
        Recent sessions, messages and tag submissions merged newest first.
        """
        sessions_result = await self.db.execute(
            select(ScanSession, Patient.name)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id)
            .order_by(ScanSession.created_at.desc())
            .limit(FEED_SESSION_LIMIT)
        )
        messages_result = await self.db.execute(
            select(Message, MessageThread.subject)
            .join(MessageThread, Message.thread_id == MessageThread.id)
            .join(Patient, MessageThread.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id)
            .order_by(Message.created_at.desc())
            .limit(FEED_MESSAGE_LIMIT)
        )
        tags_result = await self.db.execute(
            select(TagSet, Patient.id, Patient.name)
            .join(ScanSession, TagSet.session_id == ScanSession.id)
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(Patient.practice_id == practice_id)
            .order_by(TagSet.created_at.desc())
            .limit(FEED_TAG_LIMIT)
        )

        feed: List[Dict[str, Any]] = []

        for session, patient_name in sessions_result.all():
            feed.append(
                {
                    "type": FeedItemType.SCAN_SESSION,
                    "id": session.id,
                    "date": as_utc(session.created_at),
                    "data": {
                        "status": session.status.value,
                        "patientId": str(session.patient_id),
                        "patientName": patient_name,
                    },
                }
            )

        for message, subject in messages_result.all():
            feed.append(
                {
                    "type": FeedItemType.MESSAGE,
                    "id": message.id,
                    "date": as_utc(message.created_at),
                    "data": {
                        "senderType": message.sender_type.value,
                        "content": message.content,
                        "threadId": str(message.thread_id),
                        "threadSubject": subject,
                    },
                }
            )

        for tag_set, patient_id, patient_name in tags_result.all():
            feed.append(
                {
                    "type": FeedItemType.TAG_SUBMISSION,
                    "id": tag_set.id,
                    "date": as_utc(tag_set.created_at),
                    "data": {
                        "overallTracking": tag_set.overall_tracking,
                        "sessionId": str(tag_set.session_id),
                        "patientId": str(patient_id),
                        "patientName": patient_name,
                    },
                }
            )

        feed.sort(key=lambda item: item["date"], reverse=True)
        return feed

    # ============= Compliance =============
    async def get_compliance_stats(
        self, practice_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Split active patients into on-time and overdue.

        A patient is on time when their latest scan is no older than their
        ``scan_frequency`` in days. Patients who never scanned are overdue.
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(
                Patient.id,
                Patient.name,
                Patient.scan_frequency,
                func.max(ScanSession.created_at),
            )
            .outerjoin(ScanSession, ScanSession.patient_id == Patient.id)
            .where(
                Patient.practice_id == practice_id,
                Patient.status == PatientStatus.ACTIVE,
            )
            .group_by(Patient.id, Patient.name, Patient.scan_frequency)
        )
        rows = result.all()

        on_time = 0
        overdue_patients: List[Dict[str, Any]] = []

        for patient_id, name, scan_frequency, last_scan in rows:
            frequency = scan_frequency or settings.DEFAULT_SCAN_FREQUENCY_DAYS
            if last_scan is None:
                overdue_patients.append(
                    {"id": patient_id, "name": name, "days_since_last_scan": None}
                )
                continue

            elapsed = now - as_utc(last_scan)
            if elapsed <= timedelta(days=frequency):
                on_time += 1
            else:
                overdue_patients.append(
                    {"id": patient_id, "name": name, "days_since_last_scan": elapsed.days}
                )

        total_active = len(rows)
        return {
            "total_active": total_active,
            "on_time_count": on_time,
            "overdue_count": len(overdue_patients),
            "compliance_percentage": _percentage(on_time, total_active),
            "overdue_patients": overdue_patients,
        }

    # ============= Tagging rate =============
    async def get_tagging_rate(
        self, practice_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        period_days = settings.TAGGING_PERIOD_DAYS
        since = (now or utcnow()) - timedelta(days=period_days)
        total, tagged = await TagSetRepository(self.db).count_sessions_since(
            practice_id, since
        )
        return {
            "total_sessions": total,
            "tagged_sessions": tagged,
            "tagging_rate": _percentage(tagged, total),
            "period_days": period_days,
        }

    # ============= Summary =============
    async def get_summary(self, practice_id: uuid.UUID) -> Dict[str, Any]:
        pending_scans = await self.db.scalar(
            select(func.count(ScanSession.id))
            .join(Patient, ScanSession.patient_id == Patient.id)
            .where(
                Patient.practice_id == practice_id,
                ScanSession.status == ScanStatus.PENDING,
            )
        )
        total_patients = await self.db.scalar(
            select(func.count(Patient.id)).where(Patient.practice_id == practice_id)
        )
        compliance = await self.get_compliance_stats(practice_id)
        tagging = await self.get_tagging_rate(practice_id)

        return {
            "pending_scans": pending_scans or 0,
            "total_patients": total_patients or 0,
            "compliance_percentage": compliance["compliance_percentage"],
            "tagging_rate": tagging["tagging_rate"],
        }
