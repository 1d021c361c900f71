"""
Patient Management Tests

Clinic-side patient CRUD, stage progression, portal invites, and practice
isolation.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orthomonitor.config.config import settings
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.practice_model import Practice
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import PatientStatus

from conftest import API, assert_paginated_response, assert_validation_error, create_patient


@pytest.mark.asyncio
class TestCreatePatient:

    async def test_create_patient_success(
        self, client: AsyncClient, doctor: User, doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/patients",
            headers=doctor_headers,
            json={
                "name": "  Jamie Lee ",
                "doctorId": str(doctor.id),
                "treatmentType": "Clear aligners",
                "alignerBrand": "Invisalign",
                "currentStage": 3,
                "totalStages": 24,
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Jamie Lee"
        assert data["status"] == "ACTIVE"
        assert data["currentStage"] == 3
        assert data["totalStages"] == 24
        assert data["scanFrequency"] == 14
        assert data["practiceId"] == str(doctor.practice_id)
        assert "password" not in data

    async def test_create_patient_with_foreign_doctor(
        self, client: AsyncClient, doctor_headers: dict, other_doctor: User
    ):
        response = await client.post(
            f"{API}/patients",
            headers=doctor_headers,
            json={"name": "Jamie Lee", "doctorId": str(other_doctor.id)},
        )
        assert response.status_code == 400

    async def test_create_patient_stage_beyond_total(
        self, client: AsyncClient, doctor: User, doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/patients",
            headers=doctor_headers,
            json={
                "name": "Jamie Lee",
                "doctorId": str(doctor.id),
                "currentStage": 30,
                "totalStages": 20,
            },
        )
        assert response.status_code == 400

    async def test_create_patient_rejects_practice_id(
        self, client: AsyncClient, doctor: User, doctor_headers: dict, other_practice: Practice
    ):
        """The practice always comes from the caller, never from the body."""
        response = await client.post(
            f"{API}/patients",
            headers=doctor_headers,
            json={
                "name": "Jamie Lee",
                "doctorId": str(doctor.id),
                "practiceId": str(other_practice.id),
            },
        )
        assert_validation_error(response, "practiceId")


@pytest.mark.asyncio
class TestListPatients:

    async def test_list_is_paginated_and_scoped(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        practice: Practice,
        doctor: User,
        doctor_headers: dict,
        other_practice: Practice,
        other_doctor: User,
    ):
        for i in range(3):
            await create_patient(db_session, practice, doctor, name=f"Patient {i}")
        await create_patient(db_session, other_practice, other_doctor, name="Elsewhere")

        response = await client.get(
            f"{API}/patients", headers=doctor_headers, params={"page": 1, "limit": 2}
        )

        assert response.status_code == 200
        data = response.json()
        assert_paginated_response(data)
        assert data["pageInfo"]["totalItems"] == 3
        assert data["pageInfo"]["totalPages"] == 2
        assert data["pageInfo"]["hasNext"] is True
        assert len(data["items"]) == 2
        assert all(item["name"] != "Elsewhere" for item in data["items"])

    async def test_filter_by_status_and_search(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        practice: Practice,
        doctor: User,
        doctor_headers: dict,
    ):
        await create_patient(db_session, practice, doctor, name="Sam Active")
        paused = await create_patient(db_session, practice, doctor, name="Sam Paused")
        paused.status = PatientStatus.PAUSED
        await db_session.commit()

        response = await client.get(
            f"{API}/patients", headers=doctor_headers, params={"status": "PAUSED"}
        )
        names = [item["name"] for item in response.json()["items"]]
        assert names == ["Sam Paused"]

        response = await client.get(
            f"{API}/patients", headers=doctor_headers, params={"search": "sam"}
        )
        assert response.json()["pageInfo"]["totalItems"] == 2


@pytest.mark.asyncio
class TestUpdatePatient:

    async def test_partial_update(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/patients/{patient.id}",
            headers=doctor_headers,
            json={"status": "COMPLETED", "scanFrequency": 7},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["scanFrequency"] == 7
        assert data["name"] == patient.name

    async def test_patient_in_other_practice_is_not_found(
        self, client: AsyncClient, patient: Patient, other_doctor_headers: dict
    ):
        response = await client.get(f"{API}/patients/{patient.id}", headers=other_doctor_headers)
        assert response.status_code == 404

        response = await client.patch(
            f"{API}/patients/{patient.id}",
            headers=other_doctor_headers,
            json={"status": "DROPPED"},
        )
        assert response.status_code == 404

    async def test_unknown_patient(self, client: AsyncClient, doctor_headers: dict):
        response = await client.get(f"{API}/patients/{uuid.uuid4()}", headers=doctor_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestAdvanceStage:

    async def test_advance_until_final_stage(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        practice: Practice,
        doctor: User,
        doctor_headers: dict,
    ):
        patient = await create_patient(
            db_session, practice, doctor, current_stage=4, total_stages=5
        )

        response = await client.post(
            f"{API}/patients/{patient.id}/advance-stage", headers=doctor_headers
        )
        assert response.status_code == 200
        assert response.json()["currentStage"] == 5

        response = await client.post(
            f"{API}/patients/{patient.id}/advance-stage", headers=doctor_headers
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestInvites:

    async def test_create_invite(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/patients/{patient.id}/invite",
            headers=doctor_headers,
            json={"email": "jamie@example.com"},
        )

        assert response.status_code == 201
        data = response.json()
        assert len(data["token"]) == 64
        assert data["inviteUrl"] == f"{settings.PATIENT_PORTAL_URL}/register/{data['token']}"
        assert data["expiresAt"]

    async def test_create_invite_without_body(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/patients/{patient.id}/invite", headers=doctor_headers
        )
        assert response.status_code == 201

    async def test_invite_for_other_practice_patient(
        self, client: AsyncClient, patient: Patient, other_doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/patients/{patient.id}/invite", headers=other_doctor_headers
        )
        assert response.status_code == 404
