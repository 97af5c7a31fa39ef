"""Integration tests for the mission endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


async def _maize_id(client: AsyncClient) -> int:
    response = await client.get("/api/v1/missions?crop_type=maize")
    return response.json()["missions"][0]["id"]


async def _start(client: AsyncClient, headers, field_id: str | None = None) -> dict:
    mission_id = await _maize_id(client)
    body = {"field_id": field_id} if field_id else None
    response = await client.post(f"/api/v1/missions/{mission_id}/start", json=body, headers=headers)
    assert response.status_code == 201
    return response.json()


class TestMissionCatalog:
    @pytest.mark.asyncio
    async def test_list_missions(self, client: AsyncClient):
        response = await client.get("/api/v1/missions")
        assert response.status_code == 200
        missions = response.json()["missions"]
        assert len(missions) == 2
        assert all(len(m["steps"]) == 6 for m in missions)

    @pytest.mark.asyncio
    async def test_filter_by_crop(self, client: AsyncClient):
        response = await client.get("/api/v1/missions?crop_type=beans")
        assert [m["slug"] for m in response.json()["missions"]] == ["bean-harvest-champion"]


class TestMissionLifecycle:
    @pytest.mark.asyncio
    async def test_start_mission(self, client: AsyncClient, farmer_headers):
        data = await _start(client, farmer_headers, field_id="plot-a")
        assert data["mission_name"] == "Maize Season Success"
        assert data["field_id"] == "plot-a"
        assert data["status"] == "active"
        assert len(data["steps"]) == 6
        assert data["steps"][0]["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_duplicate_start_conflicts(self, client: AsyncClient, farmer_headers):
        await _start(client, farmer_headers, field_id="plot-a")
        mission_id = await _maize_id(client)
        response = await client.post(
            f"/api/v1/missions/{mission_id}/start", json={"field_id": "plot-a"}, headers=farmer_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "MissionAlreadyActiveError"

    @pytest.mark.asyncio
    async def test_unknown_mission(self, client: AsyncClient, farmer_headers):
        response = await client.post("/api/v1/missions/9999/start", headers=farmer_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_complete_steps_in_order(self, client: AsyncClient, farmer_headers):
        user_mission = await _start(client, farmer_headers)
        base = f"/api/v1/users/me/missions/{user_mission['id']}/steps"

        skipped = await client.post(f"{base}/1/complete", headers=farmer_headers)
        assert skipped.status_code == 409
        assert skipped.json()["error"] == "StepOutOfOrderError"

        first = await client.post(
            f"{base}/0/complete",
            json={"evidence_url": "https://img.example/soil.jpg"},
            headers=farmer_headers,
        )
        assert first.status_code == 200
        assert first.json()["xp_awarded"] == 15
        assert first.json()["points_awarded"] == 2

        repeat = await client.post(f"{base}/0/complete", headers=farmer_headers)
        assert repeat.json()["already_completed"] is True

    @pytest.mark.asyncio
    async def test_finish_mission(self, client: AsyncClient, farmer_headers):
        user_mission = await _start(client, farmer_headers)
        base = f"/api/v1/users/me/missions/{user_mission['id']}/steps"
        for index in range(6):
            response = await client.post(f"{base}/{index}/complete", headers=farmer_headers)
        data = response.json()
        assert data["mission_completed"] is True
        assert data["badge"] == "seasonal_maize_master"
        assert set(data["perks"]) == {"priority_market_access", "double_referral_points"}

        detail = await client.get(f"/api/v1/users/me/missions/{user_mission['id']}", headers=farmer_headers)
        assert detail.json()["status"] == "completed"

        completed = await client.get("/api/v1/users/me/missions?status=completed", headers=farmer_headers)
        assert len(completed.json()["missions"]) == 1

    @pytest.mark.asyncio
    async def test_abandon(self, client: AsyncClient, farmer_headers):
        user_mission = await _start(client, farmer_headers)
        response = await client.post(
            f"/api/v1/users/me/missions/{user_mission['id']}/abandon", headers=farmer_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "abandoned"

    @pytest.mark.asyncio
    async def test_missions_are_private(self, client: AsyncClient, farmer_headers, make_headers):
        user_mission = await _start(client, farmer_headers)
        response = await client.get(
            f"/api/v1/users/me/missions/{user_mission['id']}", headers=make_headers("farmer-2")
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_status_filter(self, client: AsyncClient, farmer_headers):
        response = await client.get("/api/v1/users/me/missions?status=paused", headers=farmer_headers)
        assert response.status_code == 422
