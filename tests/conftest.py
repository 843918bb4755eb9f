"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (aiosqlite) shared by the app and the test
- Fake blob storage, email service and cache wired in through dependency overrides
- JWT token minting for authenticated requests
- HTTPX AsyncClient against the ASGI app
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict

# Must be set before the app modules read their settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_JWT_AUDIENCE"] = "authenticated"
os.environ["EMAIL_SERVICE"] = "resend"
os.environ.pop("S3_BUCKET_NAME", None)

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database import get_db, get_redis
from main import app
from models.base import Base
from models.form import Form, Submission
from services.email_service import get_email_service
from services.exceptions import UpstreamFailure
from services.file_service import get_storage


# =============================================================================
# Fakes for external collaborators
# =============================================================================

class FakeStorage:
    """In-memory blob store. Uploads whose key ends with a name in fail_uploads_for fail."""

    def __init__(self):
        self.objects: Dict[str, tuple] = {}
        self.upload_calls = []
        self.fail_uploads_for = set()
        self.fail_deletes = False

    async def upload(self, key: str, content: bytes, content_type: str) -> str:
        self.upload_calls.append(key)
        if any(key.endswith(f"-{name}") for name in self.fail_uploads_for):
            raise UpstreamFailure(f"upload of {key} failed")
        self.objects[key] = (content, content_type)
        return key

    async def download(self, key: str) -> bytes:
        if key not in self.objects:
            raise UpstreamFailure(f"{key} not found")
        return self.objects[key][0]

    async def delete(self, keys) -> None:
        if self.fail_deletes:
            raise UpstreamFailure("delete failed")
        for key in keys:
            self.objects.pop(key, None)


class FakeEmailService:
    """Records every send attempt; raises for addresses in raise_for."""

    def __init__(self):
        self.attempts = []
        self.sent = []
        self.raise_for = set()

    async def send_email(self, to_email, subject, content, html_content=None, **kwargs):
        self.attempts.append(to_email)
        if to_email in self.raise_for:
            raise RuntimeError(f"provider rejected {to_email}")
        self.sent.append({"to": to_email, "subject": subject, "text": content, "html": html_content})
        return {"status": "success", "message_id": str(uuid.uuid4()), "provider": "fake"}


class FakeCache:
    """The handful of Redis commands the app uses."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def exists(self, key):
        return int(key in self.store)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


# =============================================================================
# Auth Fixtures
# =============================================================================

def mint_token(user_id: str, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "email": f"{user_id}@example.com",
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user_id)}"}


@pytest.fixture
def owner_id() -> str:
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def other_user_id() -> str:
    return f"user-{uuid.uuid4().hex[:8]}"


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(session_factory, storage, email_service, cache) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client; pass auth_headers(...) per request for owner routes."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_redis] = lambda: cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Data helpers
# =============================================================================

CV_FORM_FIELDS = [
    {"id": "f1", "name": "email", "label": "Email", "type": "email", "required": True},
    {"id": "f2", "name": "cv", "label": "CV", "type": "file", "required": True},
]


async def create_form(
    db: AsyncSession,
    user_id: str,
    fields=None,
    settings=None,
    is_active: bool = True,
    name: str = "Job application",
) -> Form:
    form = Form(
        user_id=user_id,
        name=name,
        description="",
        fields=list(CV_FORM_FIELDS if fields is None else fields),
        settings=settings or {},
        is_active=is_active,
    )
    db.add(form)
    await db.commit()
    await db.refresh(form)
    return form


async def create_submission(db: AsyncSession, form_id: str, data=None, files=None) -> Submission:
    submission = Submission(form_id=form_id, data=data or {}, files=files or [])
    db.add(submission)
    await db.commit()
    await db.refresh(submission)
    return submission
