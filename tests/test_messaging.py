"""
Messaging Tests

Clinic and portal sides of patient conversations, unread counts, read
receipts and the push preview sent for clinic messages.
"""

import uuid

import pytest
from httpx import AsyncClient

from orthomonitor.models.patient_model import Patient

from conftest import API, assert_validation_error, create_patient, patient_headers


async def open_thread(client: AsyncClient, patient: Patient, headers: dict, subject="Check-in"):
    response = await client.post(
        f"{API}/messaging/threads",
        headers=headers,
        json={"patientId": str(patient.id), "subject": subject},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def clinic_message(client: AsyncClient, thread_id: str, headers: dict, content: str, **extra):
    return await client.post(
        f"{API}/messaging/messages",
        headers=headers,
        json={"threadId": thread_id, "content": content, **extra},
    )


async def patient_message(client: AsyncClient, thread_id: str, headers: dict, content: str):
    return await client.post(
        f"{API}/patient/messages",
        headers=headers,
        json={"threadId": thread_id, "content": content},
    )


@pytest.mark.asyncio
class TestClinicMessaging:

    async def test_create_thread(self, client: AsyncClient, patient: Patient, doctor_headers: dict):
        thread = await open_thread(client, patient, doctor_headers)

        assert thread["patientId"] == str(patient.id)
        assert thread["subject"] == "Check-in"
        assert thread["isActive"] is True
        assert thread["lastMessage"] is None
        assert thread["unreadCount"] == 0

    async def test_create_thread_for_foreign_patient(
        self, client: AsyncClient, patient: Patient, other_doctor_headers: dict
    ):
        response = await client.post(
            f"{API}/messaging/threads",
            headers=other_doctor_headers,
            json={"patientId": str(patient.id)},
        )
        assert response.status_code == 404

    async def test_send_message_notifies_patient(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor,
        doctor_headers: dict,
        patient_auth_headers: dict,
        push_sender,
    ):
        await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": "https://push.example.com/msg", "keys": {"p256dh": "p", "auth": "a"}},
        )
        thread = await open_thread(client, patient, doctor_headers)
        content = "Please switch to tray 7 tonight. " * 5

        response = await clinic_message(client, thread["id"], doctor_headers, content)

        assert response.status_code == 201
        data = response.json()
        assert data["senderType"] == "DOCTOR"
        assert data["senderId"] == str(doctor.id)
        assert data["readAt"] is None

        assert len(push_sender.calls) == 1
        payload = push_sender.calls[0]["data"]
        assert payload["title"] == "New Message"
        assert payload["url"] == f"/messages/{thread['id']}"
        assert payload["body"] == content[:100] + "..."

    async def test_patient_sender_type_rejected(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        thread = await open_thread(client, patient, doctor_headers)

        response = await clinic_message(
            client, thread["id"], doctor_headers, "Hello", senderType="PATIENT"
        )
        assert_validation_error(response, "senderType")

    async def test_blank_content_rejected(
        self, client: AsyncClient, patient: Patient, doctor_headers: dict
    ):
        thread = await open_thread(client, patient, doctor_headers)

        response = await clinic_message(client, thread["id"], doctor_headers, "   ")
        assert_validation_error(response, "content")

    async def test_unread_count_covers_patient_messages(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        patient_auth_headers: dict,
    ):
        thread = await open_thread(client, patient, doctor_headers)
        await clinic_message(client, thread["id"], doctor_headers, "How is the fit?")
        await patient_message(client, thread["id"], patient_auth_headers, "A bit tight")
        reply = await patient_message(client, thread["id"], patient_auth_headers, "But fine")

        threads = await client.get(f"{API}/messaging/threads", headers=doctor_headers)
        summary = threads.json()[0]
        assert summary["unreadCount"] == 2
        assert summary["lastMessage"]["content"] == "But fine"

        read = await client.patch(
            f"{API}/messaging/messages/{reply.json()['id']}/read", headers=doctor_headers
        )
        assert read.status_code == 200
        assert read.json()["readAt"] is not None

        detail = await client.get(f"{API}/messaging/threads/{thread['id']}", headers=doctor_headers)
        assert detail.json()["unreadCount"] == 1
        assert [m["content"] for m in detail.json()["messages"]] == [
            "How is the fit?",
            "A bit tight",
            "But fine",
        ]

    async def test_filter_threads_by_patient(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
    ):
        await open_thread(client, patient, doctor_headers)

        response = await client.get(
            f"{API}/messaging/threads",
            headers=doctor_headers,
            params={"patientId": str(uuid.uuid4())},
        )
        assert response.json() == []

    async def test_other_practice_cannot_read_thread(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        other_doctor_headers: dict,
    ):
        thread = await open_thread(client, patient, doctor_headers)

        response = await client.get(
            f"{API}/messaging/threads/{thread['id']}", headers=other_doctor_headers
        )
        assert response.status_code == 404

        response = await clinic_message(client, thread["id"], other_doctor_headers, "Hi")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestPortalMessaging:

    async def test_patient_sees_own_threads(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        patient_auth_headers: dict,
        push_sender,
    ):
        thread = await open_thread(client, patient, doctor_headers)
        await clinic_message(client, thread["id"], doctor_headers, "Welcome aboard")

        response = await client.get(f"{API}/patient/messages", headers=patient_auth_headers)

        assert response.status_code == 200
        threads = response.json()
        assert len(threads) == 1
        assert threads[0]["unreadCount"] == 1

    async def test_patient_reply_does_not_push(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        patient_auth_headers: dict,
        push_sender,
    ):
        await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": "https://push.example.com/me", "keys": {"p256dh": "p", "auth": "a"}},
        )
        thread = await open_thread(client, patient, doctor_headers)

        response = await patient_message(client, thread["id"], patient_auth_headers, "Thanks!")

        assert response.status_code == 201
        assert response.json()["senderType"] == "PATIENT"
        assert response.json()["senderId"] == str(patient.id)
        assert push_sender.calls == []

    async def test_mark_clinic_message_read(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        patient_auth_headers: dict,
    ):
        thread = await open_thread(client, patient, doctor_headers)
        sent = await clinic_message(client, thread["id"], doctor_headers, "Tray 8 next week")

        response = await client.patch(
            f"{API}/patient/messages/{sent.json()['id']}/read", headers=patient_auth_headers
        )
        assert response.status_code == 200
        assert response.json()["readAt"] is not None

        detail = await client.get(
            f"{API}/patient/messages/{thread['id']}", headers=patient_auth_headers
        )
        assert detail.json()["unreadCount"] == 0

    async def test_thread_of_another_patient(
        self,
        client: AsyncClient,
        db_session,
        practice,
        doctor,
        patient: Patient,
        doctor_headers: dict,
    ):
        thread = await open_thread(client, patient, doctor_headers)
        intruder = await create_patient(
            db_session, practice, doctor, name="Other", email="other@example.com"
        )

        response = await client.get(
            f"{API}/patient/messages/{thread['id']}", headers=patient_headers(intruder)
        )
        assert response.status_code == 404

        response = await patient_message(client, thread["id"], patient_headers(intruder), "Hi")
        assert response.status_code == 404

    async def test_clinic_token_rejected(self, client: AsyncClient, doctor_headers: dict):
        response = await client.get(f"{API}/patient/messages", headers=doctor_headers)
        assert response.status_code == 401


@pytest.mark.asyncio
class TestPushSubscriptions:

    async def test_vapid_public_key(self, client: AsyncClient, patient_auth_headers: dict):
        response = await client.get(
            f"{API}/patient/push/vapid-public-key", headers=patient_auth_headers
        )
        assert response.status_code == 200
        assert response.json() == {"key": "test-public-key"}

    async def test_unsubscribe_stops_delivery(
        self,
        client: AsyncClient,
        patient: Patient,
        doctor_headers: dict,
        patient_auth_headers: dict,
        push_sender,
    ):
        endpoint = "https://push.example.com/bye"
        await client.post(
            f"{API}/patient/push/subscribe",
            headers=patient_auth_headers,
            json={"endpoint": endpoint, "keys": {"p256dh": "p", "auth": "a"}},
        )

        response = await client.request(
            "DELETE",
            f"{API}/patient/push/unsubscribe",
            headers=patient_auth_headers,
            json={"endpoint": endpoint},
        )
        assert response.status_code == 200

        thread = await open_thread(client, patient, doctor_headers)
        await clinic_message(client, thread["id"], doctor_headers, "Anyone there?")
        assert push_sender.calls == []
