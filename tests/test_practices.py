"""
Practice Tests

Practice records, admin-only creation, and the messaging settings blob.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orthomonitor.models.practice_model import Practice

from conftest import API, assert_validation_error


@pytest.mark.asyncio
class TestPracticeRecords:

    async def test_admin_creates_practice(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            f"{API}/practices",
            headers=admin_headers,
            json={"name": "  Northside Ortho ", "phone": "+1 555 010 2030"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Northside Ortho"
        assert data["subscriptionTier"] == "basic"
        assert data["taggingRate"] == 0.0
        assert data["discountPercent"] == 0

    async def test_doctor_cannot_create_practice(self, client: AsyncClient, doctor_headers: dict):
        response = await client.post(
            f"{API}/practices", headers=doctor_headers, json={"name": "Northside Ortho"}
        )
        assert response.status_code == 403

    async def test_invalid_phone(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            f"{API}/practices",
            headers=admin_headers,
            json={"name": "Northside Ortho", "phone": "12"},
        )
        assert_validation_error(response, "phone")

    async def test_doctor_lists_only_own_practice(
        self,
        client: AsyncClient,
        practice: Practice,
        other_practice: Practice,
        doctor_headers: dict,
    ):
        response = await client.get(f"{API}/practices", headers=doctor_headers)

        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [str(practice.id)]

    async def test_admin_lists_all_practices(
        self,
        client: AsyncClient,
        practice: Practice,
        other_practice: Practice,
        admin_headers: dict,
    ):
        response = await client.get(f"{API}/practices", headers=admin_headers)
        assert len(response.json()) == 2

    async def test_update_own_practice(
        self, client: AsyncClient, practice: Practice, doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/practices/{practice.id}",
            headers=doctor_headers,
            json={"address": "12 High Street"},
        )

        assert response.status_code == 200
        assert response.json()["address"] == "12 High Street"
        assert response.json()["name"] == practice.name

    async def test_other_practice_is_forbidden(
        self, client: AsyncClient, practice: Practice, other_doctor_headers: dict
    ):
        response = await client.get(f"{API}/practices/{practice.id}", headers=other_doctor_headers)
        assert response.status_code == 403

        response = await client.patch(
            f"{API}/practices/{practice.id}",
            headers=other_doctor_headers,
            json={"name": "Taken Over"},
        )
        assert response.status_code == 403


@pytest.mark.asyncio
class TestPracticeSettings:

    async def test_defaults_to_portal(
        self, client: AsyncClient, practice: Practice, doctor_headers: dict
    ):
        response = await client.get(
            f"{API}/practices/{practice.id}/settings", headers=doctor_headers
        )

        assert response.status_code == 200
        assert response.json() == {"messagingMode": "portal", "whatsappNumber": None}

    async def test_switch_to_whatsapp_and_back(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        practice: Practice,
        doctor_headers: dict,
    ):
        practice.settings = {"theme": "dark"}
        await db_session.commit()
        url = f"{API}/practices/{practice.id}/settings"

        response = await client.patch(
            url,
            headers=doctor_headers,
            json={"messagingMode": "whatsapp", "whatsappNumber": "447700900123"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "messagingMode": "whatsapp",
            "whatsappNumber": "447700900123",
        }

        response = await client.patch(
            url,
            headers=doctor_headers,
            json={"messagingMode": "portal", "whatsappNumber": "447700900123"},
        )
        assert response.json() == {"messagingMode": "portal", "whatsappNumber": None}

        record = await client.get(f"{API}/practices/{practice.id}", headers=doctor_headers)
        assert record.json()["settings"] == {"theme": "dark", "messagingMode": "portal"}

    async def test_whatsapp_requires_number(
        self, client: AsyncClient, practice: Practice, doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/practices/{practice.id}/settings",
            headers=doctor_headers,
            json={"messagingMode": "whatsapp"},
        )
        assert response.status_code == 422

    async def test_whatsapp_number_digits_only(
        self, client: AsyncClient, practice: Practice, doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/practices/{practice.id}/settings",
            headers=doctor_headers,
            json={"messagingMode": "whatsapp", "whatsappNumber": "+44 7700 900123"},
        )
        assert_validation_error(response, "whatsappNumber")

    async def test_unknown_mode(
        self, client: AsyncClient, practice: Practice, doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/practices/{practice.id}/settings",
            headers=doctor_headers,
            json={"messagingMode": "sms"},
        )
        assert_validation_error(response, "messagingMode")

    async def test_other_practice_settings_forbidden(
        self, client: AsyncClient, practice: Practice, other_doctor_headers: dict
    ):
        response = await client.patch(
            f"{API}/practices/{practice.id}/settings",
            headers=other_doctor_headers,
            json={"messagingMode": "portal"},
        )
        assert response.status_code == 403
