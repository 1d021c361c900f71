"""
Dashboard Tests

Activity feed, compliance split, tagging rate and the summary cards.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orthomonitor.db.base import utcnow
from orthomonitor.models.message_model import Message, MessageThread
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.practice_model import Practice
from orthomonitor.models.scan_model import ScanSession
from orthomonitor.models.tagging_model import TagSet
from orthomonitor.models.user_model import User
from orthomonitor.repositories.dashboard_repo import DashboardRepository
from orthomonitor.schemas.common_schemas import PatientStatus, ScanStatus, SenderType

from conftest import API, create_patient


async def add_scan(db: AsyncSession, patient: Patient, days_ago: float = 0, **fields) -> ScanSession:
    session = ScanSession(
        patient_id=patient.id, created_at=utcnow() - timedelta(days=days_ago), **fields
    )
    db.add(session)
    await db.commit()
    return session


@pytest.mark.asyncio
@pytest.mark.unit
class TestCompliance:

    async def test_split_by_scan_frequency(
        self, db_session: AsyncSession, practice: Practice, doctor: User
    ):
        on_time = await create_patient(db_session, practice, doctor, name="On Time", scan_frequency=14)
        late = await create_patient(db_session, practice, doctor, name="Late", scan_frequency=7)
        await create_patient(db_session, practice, doctor, name="Never Scanned")
        paused = await create_patient(db_session, practice, doctor, name="Paused")
        paused.status = PatientStatus.PAUSED
        await db_session.commit()

        await add_scan(db_session, on_time, days_ago=20)
        await add_scan(db_session, on_time, days_ago=2)
        await add_scan(db_session, late, days_ago=9.5)
        await add_scan(db_session, paused, days_ago=100)

        stats = await DashboardRepository(db_session).get_compliance_stats(practice.id)

        assert stats["total_active"] == 3
        assert stats["on_time_count"] == 1
        assert stats["overdue_count"] == 2
        assert stats["compliance_percentage"] == 33.33
        overdue = {item["name"]: item["days_since_last_scan"] for item in stats["overdue_patients"]}
        assert overdue == {"Late": 9, "Never Scanned": None}

    async def test_no_active_patients(self, db_session: AsyncSession, practice: Practice):
        stats = await DashboardRepository(db_session).get_compliance_stats(practice.id)
        assert stats["total_active"] == 0
        assert stats["compliance_percentage"] == 0.0


@pytest.mark.asyncio
class TestDashboardRoutes:

    async def test_feed_merges_activity_newest_first(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient: Patient,
        doctor: User,
        doctor_headers: dict,
    ):
        session = await add_scan(db_session, patient, days_ago=3)
        thread = MessageThread(patient_id=patient.id, subject="Tray 6")
        db_session.add(thread)
        await db_session.commit()
        db_session.add(
            Message(
                thread_id=thread.id,
                sender_type=SenderType.PATIENT,
                sender_id=patient.id,
                content="My aligner feels loose",
                created_at=utcnow() - timedelta(days=2),
            )
        )
        db_session.add(
            TagSet(
                session_id=session.id,
                tagged_by_id=doctor.id,
                overall_tracking=2,
                oral_hygiene=1,
                created_at=utcnow() - timedelta(days=1),
            )
        )
        await db_session.commit()

        response = await client.get(f"{API}/dashboard/feed", headers=doctor_headers)

        assert response.status_code == 200
        feed = response.json()
        assert [item["type"] for item in feed] == ["tag_submission", "message", "scan_session"]
        assert feed[0]["data"]["patientName"] == patient.name
        assert feed[1]["data"]["threadSubject"] == "Tray 6"
        assert feed[2]["data"]["status"] == "PENDING"

    async def test_feed_is_practice_scoped(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient: Patient,
        other_doctor_headers: dict,
    ):
        await add_scan(db_session, patient)

        response = await client.get(f"{API}/dashboard/feed", headers=other_doctor_headers)
        assert response.json() == []

    async def test_summary(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient: Patient,
        doctor: User,
        doctor_headers: dict,
    ):
        await add_scan(db_session, patient, days_ago=1)
        reviewed = await add_scan(db_session, patient, days_ago=1, status=ScanStatus.REVIEWED)
        db_session.add(
            TagSet(session_id=reviewed.id, tagged_by_id=doctor.id, overall_tracking=1, oral_hygiene=1)
        )
        await db_session.commit()

        response = await client.get(f"{API}/dashboard/summary", headers=doctor_headers)

        assert response.status_code == 200
        assert response.json() == {
            "pendingScans": 1,
            "totalPatients": 1,
            "compliancePercentage": 100.0,
            "taggingRate": 50.0,
        }

    async def test_compliance_and_tagging_rate_routes(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        compliance = await client.get(f"{API}/dashboard/compliance", headers=doctor_headers)
        assert compliance.status_code == 200
        assert compliance.json()["overduePatients"] == [
            {"id": str(patient.id), "name": patient.name, "daysSinceLastScan": None}
        ]

        rate = await client.get(f"{API}/dashboard/tagging-rate", headers=doctor_headers)
        assert rate.json() == {
            "totalSessions": 0,
            "taggedSessions": 0,
            "taggingRate": 0.0,
            "periodDays": 30,
        }

    async def test_requires_clinic_token(self, client: AsyncClient):
        response = await client.get(f"{API}/dashboard/summary")
        assert response.status_code == 401
