"""Integration tests for the progress API endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from shamba.database import get_session
from shamba.db.models import UserProfile, UserStreak


class TestPublicEndpoints:
    @pytest.mark.asyncio
    async def test_list_levels(self, client: AsyncClient):
        response = await client.get("/api/v1/levels")
        assert response.status_code == 200
        levels = response.json()["levels"]
        assert len(levels) == 10
        assert levels[0] == {"level": 1, "title": "Seedling", "cumulative": 0}

    @pytest.mark.asyncio
    async def test_list_actions(self, client: AsyncClient):
        response = await client.get("/api/v1/actions")
        assert response.status_code == 200
        by_type = {a["action_type"]: a for a in response.json()}
        assert by_type["price_check"]["cooldown_minutes"] == 5
        assert by_type["task_complete"]["daily_limit"] == 20


class TestAuthRequired:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/users/me/progress"),
            ("get", "/api/v1/users/me/points"),
            ("get", "/api/v1/users/me/streak"),
            ("get", "/api/v1/users/me/badges"),
            ("get", "/api/v1/users/me/score"),
        ],
    )
    async def test_requires_token(self, client: AsyncClient, method, path):
        response = await getattr(client, method)(path)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/users/me/progress", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


class TestProgress:
    @pytest.mark.asyncio
    async def test_new_user_progress(self, client: AsyncClient, farmer_headers):
        response = await client.get("/api/v1/users/me/progress", headers=farmer_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "farmer-1"
        assert data["total_xp"] == 0
        assert data["level"] == 1
        assert data["level_title"] == "Seedling"
        assert data["points_balance"] == 0
        assert data["current_streak"] == 0

    @pytest.mark.asyncio
    async def test_reading_progress_writes_nothing(self, client: AsyncClient, farmer_headers):
        assert (await client.get("/api/v1/users/me/progress", headers=farmer_headers)).status_code == 200
        async for session in get_session():
            profiles = await session.execute(select(func.count()).select_from(UserProfile))
            streaks = await session.execute(select(func.count()).select_from(UserStreak))
            assert profiles.scalar_one() == 0
            assert streaks.scalar_one() == 0
            break

    @pytest.mark.asyncio
    async def test_progress_after_action(self, client: AsyncClient, farmer_headers):
        await client.post("/api/v1/actions", json={"action_type": "photo_upload"}, headers=farmer_headers)
        data = (await client.get("/api/v1/users/me/progress", headers=farmer_headers)).json()
        assert data["total_xp"] == 7
        assert data["points_balance"] == 2
        assert data["photo_uploads"] == 1
        assert data["current_streak"] == 1


class TestActions:
    @pytest.mark.asyncio
    async def test_record_action(self, client: AsyncClient, farmer_headers):
        response = await client.post(
            "/api/v1/actions",
            json={"action_type": "photo_upload", "context": {"crop": "maize"}},
            headers=farmer_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["reward"]["rewarded"] is True
        assert data["reward"]["points_awarded"] == 2
        assert data["streak"]["current_streak"] == 1
        assert data["challenges"][0]["slug"] == "photo-patrol"

    @pytest.mark.asyncio
    async def test_unknown_action_is_not_an_error(self, client: AsyncClient, farmer_headers):
        response = await client.post("/api/v1/actions", json={"action_type": "juggling"}, headers=farmer_headers)
        assert response.status_code == 200
        assert response.json()["reward"]["reason"] == "unknown action type"

    @pytest.mark.asyncio
    async def test_cooldown_reported(self, client: AsyncClient, farmer_headers):
        await client.post("/api/v1/actions", json={"action_type": "price_check"}, headers=farmer_headers)
        response = await client.post("/api/v1/actions", json={"action_type": "price_check"}, headers=farmer_headers)
        reward = response.json()["reward"]
        assert reward["rewarded"] is False
        assert reward["reason"] == "cooldown active"
        assert reward["next_reward_at"] is not None

    @pytest.mark.asyncio
    async def test_empty_action_type_rejected(self, client: AsyncClient, farmer_headers):
        response = await client.post("/api/v1/actions", json={"action_type": ""}, headers=farmer_headers)
        assert response.status_code == 422


class TestHistories:
    @pytest.mark.asyncio
    async def test_xp_history(self, client: AsyncClient, farmer_headers):
        await client.post("/api/v1/actions", json={"action_type": "photo_upload"}, headers=farmer_headers)
        response = await client.get("/api/v1/users/me/xp/history", headers=farmer_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {e["source"] for e in data["entries"]} == {"micro_action", "streak"}

    @pytest.mark.asyncio
    async def test_points_history(self, client: AsyncClient, farmer_headers):
        await client.post("/api/v1/actions", json={"action_type": "task_complete"}, headers=farmer_headers)
        response = await client.get("/api/v1/users/me/points/history?per_page=10", headers=farmer_headers)
        data = response.json()
        assert data["total"] == 1
        assert data["per_page"] == 10
        assert data["transactions"][0]["amount"] == 3


class TestStreakEndpoints:
    @pytest.mark.asyncio
    async def test_streak_for_new_user(self, client: AsyncClient, farmer_headers):
        response = await client.get("/api/v1/users/me/streak", headers=farmer_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "cold"
        assert data["freezes_available"] == 1
        assert data["can_save"] is False

    @pytest.mark.asyncio
    async def test_save_without_streak(self, client: AsyncClient, farmer_headers):
        response = await client.post(
            "/api/v1/users/me/streak/save", json={"recovery_action": "photo_upload"}, headers=farmer_headers
        )
        assert response.status_code == 200
        assert response.json()["saved"] is False

    @pytest.mark.asyncio
    async def test_save_with_unknown_recovery_action(self, client: AsyncClient, farmer_headers):
        response = await client.post(
            "/api/v1/users/me/streak/save", json={"recovery_action": "dance"}, headers=farmer_headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"


class TestBadgesAndScore:
    @pytest.mark.asyncio
    async def test_badges_in_progress(self, client: AsyncClient, farmer_headers):
        await client.post("/api/v1/actions", json={"action_type": "video_watch"}, headers=farmer_headers)
        data = (await client.get("/api/v1/users/me/badges", headers=farmer_headers)).json()
        assert data["total_earned"] == 0
        assert data["in_progress"][0]["badge_type"] == "video_learner"

    @pytest.mark.asyncio
    async def test_score_and_recalculate(self, client: AsyncClient, farmer_headers):
        live = (await client.get("/api/v1/users/me/score", headers=farmer_headers)).json()
        assert live["total_score"] == 15
        assert live["tier"] == "bronze"
        assert live["updated_at"] is None

        stored = (await client.post("/api/v1/users/me/score/recalculate", headers=farmer_headers)).json()
        assert stored["total_score"] == 15
        assert stored["updated_at"] is not None


class TestAdminPoints:
    @pytest.mark.asyncio
    async def test_service_role_can_credit_and_debit(self, client: AsyncClient, service_headers, farmer_headers):
        earn = await client.post(
            "/api/v1/admin/points/earn",
            json={"user_id": "farmer-1", "amount": 40, "source": "harvest_sale"},
            headers=service_headers,
        )
        assert earn.status_code == 201
        assert earn.json()["balance"] == 40

        redeem = await client.post(
            "/api/v1/admin/points/redeem",
            json={"user_id": "farmer-1", "amount": 15, "source": "marketplace"},
            headers=service_headers,
        )
        assert redeem.status_code == 201
        assert redeem.json()["transaction"]["amount"] == -15

        points = (await client.get("/api/v1/users/me/points", headers=farmer_headers)).json()
        assert points == {"balance": 25, "lifetime_points": 40}

    @pytest.mark.asyncio
    async def test_overdraw_is_conflict(self, client: AsyncClient, service_headers):
        response = await client.post(
            "/api/v1/admin/points/redeem",
            json={"user_id": "farmer-1", "amount": 5, "source": "marketplace"},
            headers=service_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientBalanceError"

    @pytest.mark.asyncio
    async def test_farmer_cannot_use_admin_endpoints(self, client: AsyncClient, farmer_headers):
        response = await client.post(
            "/api/v1/admin/points/earn",
            json={"user_id": "farmer-1", "amount": 40, "source": "cheat"},
            headers=farmer_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, client: AsyncClient, service_headers):
        response = await client.post(
            "/api/v1/admin/points/earn",
            json={"user_id": "farmer-1", "amount": 0, "source": "x"},
            headers=service_headers,
        )
        assert response.status_code == 422
