"""API tests for the AI campaign endpoints."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from aicampaign.app.api.campaign import get_admin_service, get_quota_service
from aicampaign.app.db.models import CampaignStatus
from aicampaign.app.exceptions import CampaignRepositoryError
from aicampaign.app.main import app

ADMIN_HEADERS = {"X-Admin-Id": "admin-1"}


@pytest_asyncio.fixture
async def client(quota_service, admin_service):
    """HTTP client wired to services backed by the in-memory store."""
    app.dependency_overrides[get_quota_service] = lambda: quota_service
    app.dependency_overrides[get_admin_service] = lambda: admin_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestStatusEndpoint:

    @pytest.mark.asyncio
    async def test_status(self, client, make_campaign):
        await make_campaign(total_token_budget=100000, used_tokens=45000, avg_tokens_per_scan=100)

        response = await client.get("/api/v1/ai-campaign/status")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {
            "active": True,
            "slotsRemaining": 550,
            "totalSlots": 1000,
            "percentRemaining": 55,
            "urgencyLevel": "normal",
            "message": "550 slots remaining",
        }

    @pytest.mark.asyncio
    async def test_status_without_campaign(self, client):
        response = await client.get("/api/v1/ai-campaign/status")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "No active campaign",
            "code": "NOT_FOUND",
        }

    @pytest.mark.asyncio
    async def test_status_store_failure(self, client, quota_service):
        quota_service.repository.get_active_campaign = AsyncMock(
            side_effect=CampaignRepositoryError("Failed to get active campaign", "GET_ACTIVE_FAILED")
        )

        response = await client.get("/api/v1/ai-campaign/status")

        assert response.status_code == 500
        assert response.json()["code"] == "GET_ACTIVE_FAILED"


class TestAdminAuth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"X-Admin-Id": ""}, {"X-Admin-Id": "  "}])
    async def test_admin_header_required(self, client, headers):
        response = await client.get("/api/v1/admin/ai-campaign/metrics", headers=headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"


class TestAdminEndpoints:

    @pytest.mark.asyncio
    async def test_metrics(self, client, make_campaign):
        await make_campaign(total_token_budget=1000, used_tokens=250)

        response = await client.get("/api/v1/admin/ai-campaign/metrics", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["percentUsed"] == 25
        assert data["projectedSlotsRemaining"] == 7
        assert data["reservedSlots"] == 0

    @pytest.mark.asyncio
    async def test_metrics_without_campaign(self, client):
        response = await client.get("/api/v1/admin/ai-campaign/metrics", headers=ADMIN_HEADERS)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_campaign(self, client, make_campaign):
        campaign = await make_campaign()

        response = await client.get(
            f"/api/v1/admin/ai-campaign/{campaign.id}",
            params={"include_audit_logs": "true"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == campaign.id
        assert data["auditLogs"] == []

    @pytest.mark.asyncio
    async def test_get_missing_campaign(self, client):
        response = await client.get("/api/v1/admin/ai-campaign/missing", headers=ADMIN_HEADERS)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_patch_campaign(self, client, make_campaign, repository):
        campaign = await make_campaign(total_token_budget=1000)

        response = await client.patch(
            f"/api/v1/admin/ai-campaign/{campaign.id}",
            json={"totalTokenBudget": 2000, "avgTokensPerScan": 50},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalTokenBudget"] == 2000
        assert data["avgTokensPerScan"] == 50
        logs = await repository.list_audit_logs(campaign.id)
        assert sorted(logs[0].details["updatedFields"]) == ["avg_tokens_per_scan", "total_token_budget"]

    @pytest.mark.asyncio
    async def test_patch_rejects_invalid_body(self, client, make_campaign):
        campaign = await make_campaign()

        response = await client.patch(
            f"/api/v1/admin/ai-campaign/{campaign.id}",
            json={"avgTokensPerScan": 0},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_patch_reactivating_ended_campaign(self, client, make_campaign):
        campaign = await make_campaign(status=CampaignStatus.ENDED)

        response = await client.patch(
            f"/api/v1/admin/ai-campaign/{campaign.id}",
            json={"status": "ACTIVE"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CAMPAIGN_ENDED"

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, client, make_campaign):
        campaign = await make_campaign()

        paused = await client.post("/api/v1/admin/ai-campaign/pause", headers=ADMIN_HEADERS)
        assert paused.status_code == 200
        assert paused.json()["data"]["status"] == "PAUSED"

        again = await client.post("/api/v1/admin/ai-campaign/pause", headers=ADMIN_HEADERS)
        assert again.status_code == 404

        resumed = await client.post(
            "/api/v1/admin/ai-campaign/resume",
            json={"campaignId": campaign.id},
            headers=ADMIN_HEADERS,
        )
        assert resumed.status_code == 200
        assert resumed.json()["data"]["status"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_pause_by_id(self, client, make_campaign):
        campaign = await make_campaign(status=CampaignStatus.PAUSED)

        response = await client.post(
            "/api/v1/admin/ai-campaign/pause",
            json={"campaignId": campaign.id},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "ALREADY_PAUSED"

    @pytest.mark.asyncio
    async def test_resume_without_campaign_id(self, client):
        response = await client.post(
            "/api/v1/admin/ai-campaign/resume", json={}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_end_campaign(self, client, make_campaign):
        campaign = await make_campaign()

        response = await client.post(
            "/api/v1/admin/ai-campaign/end",
            json={"campaignId": campaign.id},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "ENDED"

    @pytest.mark.asyncio
    async def test_reconcile(self, client, quota_service, make_campaign):
        await make_campaign(total_token_budget=1000, avg_tokens_per_scan=100)
        await quota_service.check_and_reserve_slot_atomic("scan-1")

        response = await client.post("/api/v1/admin/ai-campaign/reconcile", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"] == {
            "previousValue": 9,
            "newValue": 9,
            "liveReservations": 1,
            "campaignId": response.json()["data"]["campaignId"],
            "drift": 0,
        }
