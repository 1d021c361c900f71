"""
Shared test fixtures and configuration for pytest.
"""

import io
import json
import os
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import AsyncGenerator, List

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("VAPID_PUBLIC_KEY", None)
os.environ.pop("VAPID_PRIVATE_KEY", None)
os.environ.pop("S3_ENDPOINT_URL", None)
os.environ.pop("WEBHOOK_URL", None)
os.environ.pop("WEBHOOK_SECRET", None)

import pytest
import httpx
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orthomonitor.api.dependencies import get_db
from orthomonitor.core.ai import AiService, get_ai_service
from orthomonitor.core.notifications import WebPushService, get_push_service
from orthomonitor.core.security import get_password_hash
from orthomonitor.core.sessions import TokenManager
from orthomonitor.core.storage import StorageService, get_storage_service
from orthomonitor.core.webhooks import WebhookService, get_webhook_service
from orthomonitor.db.base import Base
from orthomonitor.main import app
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.practice_model import Practice
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import DoctorRole


# Test database configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

API = "/api/v1"
DEFAULT_PASSWORD = "Secret123"


class FakePushSender:
    """Stands in for ``pywebpush.webpush`` and records every delivery."""

    def __init__(self):
        self.calls: List[dict] = []

    def __call__(self, subscription_info, data, vapid_private_key, vapid_claims):
        self.calls.append({"subscription_info": subscription_info, "data": json.loads(data)})


class WebhookReceiver:
    """Stands in for the webhook endpoint; answers each request with the next status."""

    def __init__(self, statuses: List[int] = None):
        self.statuses = list(statuses or [])
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status_code)

    @property
    def events(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


class FakeAnthropicMessages:
    def __init__(self, reply: str):
        self.reply = reply
        self.requests: List[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeAnthropic:
    def __init__(self, reply: str = "{}"):
        self.messages = FakeAnthropicMessages(reply)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Tables are created before and dropped after every test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def override_get_db(db_session: AsyncSession):
    """Override the get_db dependency for testing."""

    async def _override_get_db():
        yield db_session

    return _override_get_db


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def push_service(db_session: AsyncSession, push_sender: FakePushSender) -> WebPushService:
    """Push service with test VAPID keys whose deliveries go to ``push_sender``."""

    @asynccontextmanager
    async def _session_factory():
        yield db_session

    return WebPushService(
        session_factory=_session_factory,
        sender=push_sender,
        vapid_public_key="test-public-key",
        vapid_private_key="test-private-key",
        vapid_subject="mailto:test@example.com",
    )


@pytest.fixture
def webhook_receiver() -> WebhookReceiver:
    return WebhookReceiver()


@pytest.fixture
def webhook_service(webhook_receiver: WebhookReceiver) -> WebhookService:
    """Webhook sender whose requests go to ``webhook_receiver`` without real delays."""

    async def _no_sleep(seconds: float) -> None:
        return None

    return WebhookService(
        url="https://hooks.example.com/orthomonitor",
        secret="test-webhook-secret",
        transport=httpx.MockTransport(webhook_receiver),
        sleep=_no_sleep,
    )


@pytest.fixture
def fake_anthropic() -> FakeAnthropic:
    return FakeAnthropic()


@pytest.fixture
def ai_service(fake_anthropic: FakeAnthropic) -> AiService:
    return AiService(client=fake_anthropic)


@pytest.fixture
def storage(tmp_path) -> StorageService:
    """Local-filesystem storage rooted in a temporary directory."""
    service = StorageService()
    service.upload_dir = str(tmp_path / "uploads")
    return service


@pytest.fixture
async def client(
    override_get_db,
    push_service: WebPushService,
    ai_service: AiService,
    storage: StorageService,
    webhook_service: WebhookService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with database and external-service overrides.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_service] = lambda: push_service
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_webhook_service] = lambda: webhook_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============= Data fixtures =============
async def create_practice(db: AsyncSession, name: str = "Bright Smiles Orthodontics") -> Practice:
    practice = Practice(name=name, settings={})
    db.add(practice)
    await db.commit()
    await db.refresh(practice)
    return practice


async def create_user(
    db: AsyncSession,
    practice: Practice,
    email: str,
    role: DoctorRole = DoctorRole.DOCTOR,
    name: str = "Dr. Test",
) -> User:
    user = User(
        practice_id=practice.id,
        name=name,
        email=email,
        password=get_password_hash(DEFAULT_PASSWORD),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_patient(
    db: AsyncSession,
    practice: Practice,
    doctor: User,
    name: str = "Alex Patient",
    email: str = None,
    **fields,
) -> Patient:
    patient = Patient(
        practice_id=practice.id,
        doctor_id=doctor.id,
        name=name,
        email=email,
        password=get_password_hash(DEFAULT_PASSWORD) if email else None,
        **fields,
    )
    db.add(patient)
    await db.commit()
    await db.refresh(patient)
    return patient


def user_headers(user: User) -> dict:
    token = TokenManager.create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def patient_headers(patient: Patient) -> dict:
    token = TokenManager.create_patient_token({"sub": str(patient.id)})
    return {"Authorization": f"Bearer {token}"}


def make_image_bytes(size=(640, 480), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(200, 180, 170)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
async def practice(db_session: AsyncSession) -> Practice:
    return await create_practice(db_session)


@pytest.fixture
async def other_practice(db_session: AsyncSession) -> Practice:
    return await create_practice(db_session, name="Other Clinic")


@pytest.fixture
async def doctor(db_session: AsyncSession, practice: Practice) -> User:
    return await create_user(db_session, practice, "doctor@example.com")


@pytest.fixture
async def admin(db_session: AsyncSession, practice: Practice) -> User:
    return await create_user(
        db_session, practice, "admin@example.com", role=DoctorRole.ADMIN, name="Practice Admin"
    )


@pytest.fixture
async def other_doctor(db_session: AsyncSession, other_practice: Practice) -> User:
    return await create_user(db_session, other_practice, "other@example.com", name="Dr. Other")


@pytest.fixture
async def patient(db_session: AsyncSession, practice: Practice, doctor: User) -> Patient:
    return await create_patient(
        db_session, practice, doctor, email="patient@example.com", total_stages=20
    )


@pytest.fixture
def doctor_headers(doctor: User) -> dict:
    return user_headers(doctor)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return user_headers(admin)


@pytest.fixture
def other_doctor_headers(other_doctor: User) -> dict:
    return user_headers(other_doctor)


@pytest.fixture
def patient_auth_headers(patient: Patient) -> dict:
    return patient_headers(patient)


@pytest.fixture
def image_bytes() -> bytes:
    return make_image_bytes()


# Helper functions for tests
def assert_paginated_response(data: dict):
    """Assert that response is a valid paginated response."""
    assert "items" in data
    assert "pageInfo" in data
    for key in ("totalItems", "totalPages", "currentPage", "pageSize", "hasNext", "hasPrevious"):
        assert key in data["pageInfo"]


def assert_validation_error(response, field: str = None):
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "Validation failed"
    assert isinstance(body["errors"], list) and body["errors"]
    if field is not None:
        assert any(error["field"].endswith(field) for error in body["errors"])
