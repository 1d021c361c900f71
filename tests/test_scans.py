"""
Scan Session Tests

Patient intake, image uploads (multipart and presigned-key confirm), the
clinic review queue, and status changes that notify the patient.
"""

import os
import uuid
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from pywebpush import WebPushException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orthomonitor.config.config import settings
from orthomonitor.core.notifications import WebPushService
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.push_model import PushSubscription
from orthomonitor.models.practice_model import Practice
from orthomonitor.models.scan_model import ScanImage
from orthomonitor.models.user_model import User

from conftest import (
    API,
    assert_paginated_response,
    assert_validation_error,
    create_patient,
    patient_headers,
)

INTAKE = {"trayNumber": 5, "alignerFit": 2, "wearTimeHrs": 20, "attachmentCheck": "ALL_PRESENT"}


async def start_session(client: AsyncClient, headers: dict, **overrides) -> dict:
    response = await client.post(
        f"{API}/patient/scans/sessions", headers=headers, json={**INTAKE, **overrides}
    )
    assert response.status_code == 201, response.text
    return response.json()


async def upload(client: AsyncClient, url: str, headers: dict, session_id: str, image: bytes,
                 image_type: str = "FRONT", content_type: str = "image/png"):
    return await client.post(
        url,
        headers=headers,
        data={"sessionId": session_id, "imageType": image_type},
        files={"file": ("front.png", image, content_type)},
    )


@pytest.mark.asyncio
class TestPatientIntake:

    async def test_start_session_with_self_report(
        self, client: AsyncClient, patient: Patient, patient_auth_headers: dict
    ):
        data = await start_session(
            client, patient_auth_headers, trayNumber="7", notes="Slight pressure on 11"
        )

        assert data["status"] == "PENDING"
        assert data["imageCount"] == 0
        assert data["patientId"] == str(patient.id)
        assert data["reportTrayNumber"] == 7
        assert data["reportAlignerFit"] == 2
        assert data["reportWearTimeHrs"] == 20
        assert data["reportAttachments"] == "ALL_PRESENT"
        assert data["reportNotes"] == "Slight pressure on 11"

    async def test_invalid_intake_returns_field_errors(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        response = await client.post(
            f"{API}/patient/scans/sessions",
            headers=patient_auth_headers,
            json={**INTAKE, "alignerFit": 5},
        )
        assert_validation_error(response, "alignerFit")

    async def test_unknown_intake_field_rejected(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        response = await client.post(
            f"{API}/patient/scans/sessions",
            headers=patient_auth_headers,
            json={**INTAKE, "status": "REVIEWED"},
        )
        assert_validation_error(response, "status")

    async def test_list_own_sessions_newest_first(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        first = await start_session(client, patient_auth_headers, trayNumber=1)
        second = await start_session(client, patient_auth_headers, trayNumber=2)

        response = await client.get(f"{API}/patient/scans", headers=patient_auth_headers)

        assert response.status_code == 200
        ids = [item["id"] for item in response.json()]
        assert ids == [second["id"], first["id"]]
        assert response.json()[0]["images"] == []


@pytest.mark.asyncio
class TestImageUpload:

    async def test_multipart_upload_counts_image(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient_auth_headers: dict,
        image_bytes: bytes,
    ):
        session = await start_session(client, patient_auth_headers)

        response = await upload(
            client, f"{API}/patient/scans/upload", patient_auth_headers, session["id"], image_bytes
        )

        assert response.status_code == 201, response.text
        image = response.json()
        assert image["imageType"] == "FRONT"
        assert image["localPath"] and os.path.exists(image["localPath"])

        listing = (await client.get(f"{API}/patient/scans", headers=patient_auth_headers)).json()
        assert listing[0]["imageCount"] == 1
        assert [img["id"] for img in listing[0]["images"]] == [image["id"]]

        rows = await db_session.execute(
            select(func.count(ScanImage.id)).where(ScanImage.session_id == uuid.UUID(session["id"]))
        )
        assert rows.scalar() == 1

    async def test_thumbnail_generated_locally(
        self, client: AsyncClient, patient_auth_headers: dict, image_bytes: bytes
    ):
        session = await start_session(client, patient_auth_headers)
        image = (
            await upload(
                client, f"{API}/patient/scans/upload", patient_auth_headers, session["id"], image_bytes
            )
        ).json()

        url = await client.get(
            f"{API}/patient/scans/images/{image['id']}/url", headers=patient_auth_headers
        )
        thumb = await client.get(
            f"{API}/patient/scans/images/{image['id']}/thumbnail-url",
            headers=patient_auth_headers,
        )

        assert url.json()["url"] == f"/uploads/{os.path.basename(image['localPath'])}"
        assert thumb.json()["url"].endswith("-thumb.webp")

    async def test_unreadable_image_still_stored_without_thumbnail(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        session = await start_session(client, patient_auth_headers)

        response = await upload(
            client,
            f"{API}/patient/scans/upload",
            patient_auth_headers,
            session["id"],
            b"not really a png",
        )

        assert response.status_code == 201
        image_id = response.json()["id"]
        thumb = await client.get(
            f"{API}/patient/scans/images/{image_id}/thumbnail-url", headers=patient_auth_headers
        )
        assert thumb.json() == {"url": None}

    async def test_non_image_rejected(self, client: AsyncClient, patient_auth_headers: dict):
        session = await start_session(client, patient_auth_headers)

        response = await upload(
            client,
            f"{API}/patient/scans/upload",
            patient_auth_headers,
            session["id"],
            b"%PDF-1.4",
            content_type="application/pdf",
        )
        assert response.status_code == 400

    async def test_oversized_upload_rejected(
        self, client: AsyncClient, patient_auth_headers: dict, image_bytes: bytes, monkeypatch
    ):
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 100)
        session = await start_session(client, patient_auth_headers)

        response = await upload(
            client, f"{API}/patient/scans/upload", patient_auth_headers, session["id"], image_bytes
        )
        assert response.status_code == 413

    async def test_cannot_upload_to_another_patients_session(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        practice: Practice,
        patient: Patient,
        doctor: User,
        image_bytes: bytes,
    ):
        intruder = await create_patient(
            db_session, practice, doctor, name="Intruder", email="intruder@example.com"
        )
        session = await start_session(client, patient_headers(patient))

        response = await upload(
            client,
            f"{API}/patient/scans/upload",
            patient_headers(intruder),
            session["id"],
            image_bytes,
        )
        assert response.status_code == 404


@pytest.mark.asyncio
class TestPresignedFlow:

    async def test_local_upload_url_and_confirm(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        session = await start_session(client, patient_auth_headers)

        response = await client.post(
            f"{API}/patient/scans/upload-url",
            headers=patient_auth_headers,
            json={"sessionId": session["id"], "imageType": "UPPER_OCCLUSAL"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["key"].startswith(f"scans/{session['id']}/upper_occlusal-")
        assert data["url"] == f"/uploads/{data['key']}"

        confirm = await client.post(
            f"{API}/patient/scans/upload/confirm",
            headers=patient_auth_headers,
            json={"sessionId": session["id"], "imageType": "UPPER_OCCLUSAL", "key": data["key"]},
        )
        assert confirm.status_code == 201
        assert confirm.json()["s3Key"] == data["key"]

        listing = (await client.get(f"{API}/patient/scans", headers=patient_auth_headers)).json()
        assert listing[0]["imageCount"] == 1

    async def test_confirm_rejects_key_from_other_session(
        self, client: AsyncClient, patient_auth_headers: dict
    ):
        session = await start_session(client, patient_auth_headers)

        response = await client.post(
            f"{API}/patient/scans/upload/confirm",
            headers=patient_auth_headers,
            json={
                "sessionId": session["id"],
                "imageType": "FRONT",
                "key": f"scans/{uuid.uuid4()}/front-1.jpg",
            },
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestClinicScanQueue:

    async def test_doctor_creates_session_and_uploads(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        image_bytes: bytes,
    ):
        response = await client.post(
            f"{API}/scans/sessions", headers=doctor_headers, json={"patientId": str(patient.id)}
        )
        assert response.status_code == 201
        session = response.json()

        response = await upload(
            client, f"{API}/scans/upload", doctor_headers, session["id"], image_bytes, "LEFT"
        )
        assert response.status_code == 201

        detail = await client.get(f"{API}/scans/sessions/{session['id']}", headers=doctor_headers)
        assert detail.status_code == 200
        data = detail.json()
        assert data["imageCount"] == 1
        assert data["images"][0]["imageType"] == "LEFT"
        assert data["patient"]["name"] == patient.name
        assert data["tagSet"] is None

    async def test_queue_is_filtered_and_paginated(
        self,
        client: AsyncClient,
        patient: Patient,
        patient_auth_headers: dict,
        doctor_headers: dict,
    ):
        await start_session(client, patient_auth_headers)
        await start_session(client, patient_auth_headers)

        response = await client.get(
            f"{API}/scans/sessions",
            headers=doctor_headers,
            params={"status": "PENDING", "patientId": str(patient.id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert_paginated_response(data)
        assert data["pageInfo"]["totalItems"] == 2

        response = await client.get(
            f"{API}/scans/sessions", headers=doctor_headers, params={"status": "REVIEWED"}
        )
        assert response.json()["pageInfo"]["totalItems"] == 0

    async def test_other_practice_cannot_see_session(
        self,
        client: AsyncClient,
        patient_auth_headers: dict,
        other_doctor_headers: dict,
    ):
        session = await start_session(client, patient_auth_headers)

        response = await client.get(
            f"{API}/scans/sessions/{session['id']}", headers=other_doctor_headers
        )
        assert response.status_code == 404

        response = await client.get(f"{API}/scans/sessions", headers=other_doctor_headers)
        assert response.json()["pageInfo"]["totalItems"] == 0

    async def test_create_session_for_foreign_patient(
        self, client: AsyncClient, patient: Patient, other_doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/scans/sessions",
            headers=other_doctor_headers,
            json={"patientId": str(patient.id)},
        )
        assert response.status_code == 404


@pytest.mark.asyncio
class TestStatusChanges:

    async def test_review_records_reviewer_and_notifies(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient: Patient,
        doctor: User,
        patient_auth_headers: dict,
        doctor_headers: dict,
        push_sender,
    ):
        subscribe = await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "p", "auth": "a"}},
        )
        assert subscribe.status_code == 201
        session = await start_session(client, patient_auth_headers)

        response = await client.patch(
            f"{API}/scans/sessions/{session['id']}/status",
            headers=doctor_headers,
            json={"status": "REVIEWED"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REVIEWED"
        assert data["reviewedById"] == str(doctor.id)
        assert data["reviewedAt"] is not None

        assert len(push_sender.calls) == 1
        payload = push_sender.calls[0]["data"]
        assert payload["title"] == "Scan Reviewed"
        assert payload["url"] == "/home"
        assert payload["tag"] == f"scan-{session['id']}"

    async def test_flag_sends_action_needed(
        self,
        client: AsyncClient,
        patient_auth_headers: dict,
        doctor_headers: dict,
        push_sender,
    ):
        await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": "https://push.example.com/xyz", "keys": {"p256dh": "p", "auth": "a"}},
        )
        session = await start_session(client, patient_auth_headers)

        response = await client.patch(
            f"{API}/scans/sessions/{session['id']}/status",
            headers=doctor_headers,
            json={"status": "FLAGGED"},
        )

        assert response.status_code == 200
        assert response.json()["reviewedById"] is None
        assert push_sender.calls[0]["data"]["title"] == "Action Needed"

    async def test_back_to_pending_does_not_notify(
        self,
        client: AsyncClient,
        patient_auth_headers: dict,
        doctor_headers: dict,
        push_sender,
    ):
        session = await start_session(client, patient_auth_headers)

        response = await client.patch(
            f"{API}/scans/sessions/{session['id']}/status",
            headers=doctor_headers,
            json={"status": "PENDING"},
        )
        assert response.status_code == 200
        assert push_sender.calls == []

    async def test_stale_subscription_removed(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        patient: Patient,
        patient_auth_headers: dict,
        doctor_headers: dict,
        push_service: WebPushService,
    ):
        def gone(*args, **kwargs):
            raise WebPushException("gone", response=SimpleNamespace(status_code=410))

        await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": "https://push.example.com/old", "keys": {"p256dh": "p", "auth": "a"}},
        )
        session = await start_session(client, patient_auth_headers)

        push_service.sender = gone

        response = await client.patch(
            f"{API}/scans/sessions/{session['id']}/status",
            headers=doctor_headers,
            json={"status": "REVIEWED"},
        )
        assert response.status_code == 200

        remaining = await db_session.execute(
            select(func.count(PushSubscription.id)).where(PushSubscription.patient_id == patient.id)
        )
        assert remaining.scalar() == 0
