import pytest

from services.auth_service import auth_service
from tests.conftest import FakeCache, auth_headers, mint_token


@pytest.fixture
def blacklist():
    cache = FakeCache()
    auth_service.redis_client = cache
    yield cache
    auth_service.redis_client = None


@pytest.mark.asyncio
async def test_me_returns_token_subject(client, owner_id):
    response = await client.get("/api/auth/me", headers=auth_headers(owner_id))

    assert response.status_code == 200
    assert response.json() == {"user": {"id": owner_id, "email": f"{owner_id}@example.com"}}


@pytest.mark.asyncio
async def test_token_with_wrong_audience_is_rejected(client, owner_id):
    token = mint_token(owner_id, aud="someone-else")

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_subject_is_rejected(client):
    token = mint_token("")

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


@pytest.mark.asyncio
async def test_logout_revokes_token(client, blacklist, owner_id):
    headers = auth_headers(owner_id)

    response = await client.post("/api/auth/logout", headers=headers)

    assert response.status_code == 200
    assert response.json()["token_blacklisted"] is True

    again = await client.get("/api/auth/me", headers=headers)
    assert again.status_code == 401
    assert again.json() == {"error": "Token has been revoked"}


@pytest.mark.asyncio
async def test_logout_without_redis_is_not_blacklisted(client, owner_id):
    response = await client.post("/api/auth/logout", headers=auth_headers(owner_id))

    assert response.status_code == 200
    assert response.json()["token_blacklisted"] is False


@pytest.mark.asyncio
async def test_health_reports_services(client):
    response = await client.get("/health")

    assert response.status_code == 200
    services = response.json()["services"]
    assert services["storage"] == "not configured"
    assert set(services) >= {"database", "redis", "gmail", "resend"}
