import httpx
import pytest

from devhance.core.config import settings


@pytest.fixture
def github_routes():
    # Metadata API is down; the tree cannot be read either
    return {"/repos/x/y": httpx.Response(500, json={"message": "Server Error"})}


@pytest.mark.asyncio
async def test_metadata_outage_still_creates_case_study(client, auth_headers):
    response = await client.post(
        "/api/case-studies", json={"repo_url": "https://github.com/x/y"}, headers=auth_headers
    )

    assert response.status_code == 201
    body = response.json()
    assert body["degraded"] is True
    assert body["degraded_reasons"]

    data = (await client.get(f"/api/case-studies/{body['slug']}")).json()
    assert data["totalCommits"] == 0
    assert data["activePeriod"] == "Unknown"


@pytest.mark.asyncio
async def test_generation_failure_is_opaque_in_production(client, auth_headers, generator, monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    generator._client.chat.completions.create.side_effect = RuntimeError("secret upstream detail")

    response = await client.post(
        "/api/case-studies", json={"repo_url": "https://github.com/x/y"}, headers=auth_headers
    )

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "GENERATION_SERVICE_ERROR"
    assert "secret upstream detail" not in body["error"]
