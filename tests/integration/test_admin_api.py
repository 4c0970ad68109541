"""Integration tests for the admin gamification endpoints."""

import pytest

from conftest import auth_headers, utc

BASE = "/api/v1/admin/gamification"


@pytest.fixture
def admin(users):
    return auth_headers(users["root"])


class TestAccess:
    @pytest.mark.asyncio
    async def test_regular_user_forbidden(self, client, users):
        response = await client.get(f"{BASE}/settings", headers=auth_headers(users["alice"]))
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    @pytest.mark.asyncio
    async def test_anonymous_rejected(self, client):
        response = await client.get(f"{BASE}/stats")
        assert response.status_code in (401, 403)


class TestSettings:
    @pytest.mark.asyncio
    async def test_read_and_update(self, client, admin):
        response = await client.get(f"{BASE}/settings", headers=admin)
        assert response.status_code == 200
        assert response.json()["settings"]["seasonal_events_enabled"] == "false"

        response = await client.put(
            f"{BASE}/settings/seasonal_events_enabled", json={"value": "true"}, headers=admin
        )
        assert response.status_code == 200
        assert response.json() == {"key": "gamification_seasonal_events_enabled", "value": "true"}

        response = await client.get(f"{BASE}/settings", headers=admin)
        assert response.json()["settings"]["seasonal_events_enabled"] == "true"

    @pytest.mark.asyncio
    async def test_unknown_key(self, client, admin):
        response = await client.put(f"{BASE}/settings/quests_enabled", json={"value": "true"}, headers=admin)
        assert response.status_code == 404
        assert response.json()["detail"] == "Setting not found"


class TestXpRules:
    @pytest.mark.asyncio
    async def test_list_and_patch(self, client, admin):
        rules = (await client.get(f"{BASE}/xp-rules", headers=admin)).json()
        post_rule = next(r for r in rules if r["action_type"] == "post_created")

        response = await client.put(
            f"{BASE}/xp-rules/{post_rule['id']}", json={"daily_limit": 10}, headers=admin
        )

        assert response.status_code == 200
        assert response.json()["daily_limit"] == 10
        assert response.json()["xp_amount"] == 15

    @pytest.mark.asyncio
    async def test_negative_daily_limit(self, client, admin):
        response = await client.put(f"{BASE}/xp-rules/1", json={"daily_limit": -1}, headers=admin)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_rule(self, client, admin):
        response = await client.put(f"{BASE}/xp-rules/4040", json={"xp_amount": 1}, headers=admin)
        assert response.status_code == 404


class TestManualXp:
    @pytest.mark.asyncio
    async def test_credit(self, client, admin, users):
        response = await client.post(
            f"{BASE}/manual-xp",
            json={"user_id": users["bob"].id, "amount": 150, "reason": "bug bounty"},
            headers=admin,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == users["bob"].id
        assert data["total_xp"] == 150
        assert data["current_level"] == 2
        assert data["transaction_id"] > 0

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, client, admin, users):
        response = await client.post(
            f"{BASE}/manual-xp", json={"user_id": users["bob"].id, "amount": 0}, headers=admin
        )
        assert response.status_code == 422


class TestBadges:
    @pytest.mark.asyncio
    async def test_crud(self, client, admin):
        created = await client.post(
            f"{BASE}/badges",
            json={"name": "First Sale", "rarity": "common", "criteria": {"min_sales": 1}},
            headers=admin,
        )
        assert created.status_code == 201
        badge = created.json()
        assert badge["slug"] == "first-sale"

        duplicate = await client.post(f"{BASE}/badges", json={"name": "First Sale"}, headers=admin)
        assert duplicate.status_code == 400

        updated = await client.put(
            f"{BASE}/badges/{badge['id']}", json={"is_active": False}, headers=admin
        )
        assert updated.json()["is_active"] is False
        public = await client.get("/api/v1/gamification/badges")
        assert "first-sale" not in [b["slug"] for b in public.json()]
        listed = await client.get(f"{BASE}/badges", headers=admin)
        assert "first-sale" in [b["slug"] for b in listed.json()]

        deleted = await client.delete(f"{BASE}/badges/{badge['id']}", headers=admin)
        assert deleted.status_code == 204
        assert (await client.delete(f"{BASE}/badges/{badge['id']}", headers=admin)).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_rarity(self, client, admin):
        response = await client.post(f"{BASE}/badges", json={"name": "Shiny", "rarity": "mythic"}, headers=admin)
        assert response.status_code == 422


class TestEvents:
    @pytest.mark.asyncio
    async def test_crud(self, client, admin):
        body = {
            "name": "Summer Bazaar",
            "start_date": utc(days=-1).isoformat(),
            "end_date": utc(days=6).isoformat(),
            "xp_multiplier": 1.5,
            "badge_rewards": ["legend"],
        }
        created = await client.post(f"{BASE}/events", json=body, headers=admin)
        assert created.status_code == 201
        event = created.json()
        assert event["is_active"] is True
        assert event["badge_rewards"] == ["legend"]

        updated = await client.put(f"{BASE}/events/{event['id']}", json={"xp_multiplier": 2.5}, headers=admin)
        assert updated.status_code == 200
        assert updated.json()["xp_multiplier"] == 2.5

        listed = await client.get(f"{BASE}/events", headers=admin)
        assert [e["name"] for e in listed.json()] == ["Summer Bazaar"]

        assert (await client.delete(f"{BASE}/events/{event['id']}", headers=admin)).status_code == 204
        assert (await client.get(f"{BASE}/events", headers=admin)).json() == []

    @pytest.mark.asyncio
    async def test_end_before_start(self, client, admin):
        body = {"name": "Broken", "start_date": utc(days=2).isoformat(), "end_date": utc().isoformat()}
        response = await client.post(f"{BASE}/events", json=body, headers=admin)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_event(self, client, admin):
        response = await client.put(f"{BASE}/events/321", json={"name": "x"}, headers=admin)
        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found"


class TestOperations:
    @pytest.mark.asyncio
    async def test_force_leaderboard_update(self, client, admin):
        response = await client.post(f"{BASE}/leaderboards/update", headers=admin)
        assert response.status_code == 200
        assert response.json() == {"started": True}

    @pytest.mark.asyncio
    async def test_stats(self, client, admin, gam, users):
        await gam.xp.award_xp(users["alice"].id, "product_sold")

        response = await client.get(f"{BASE}/stats", headers=admin)

        assert response.status_code == 200
        data = response.json()
        assert data["total_users"] == 1
        assert data["total_xp_awarded"] == 30
        assert data["top_users"][0]["username"] == "alice"

    @pytest.mark.asyncio
    async def test_logs_newest_first(self, client, admin, users):
        await client.put(f"{BASE}/settings/xp_multiplier", json={"value": "2"}, headers=admin)
        await client.post(
            f"{BASE}/manual-xp", json={"user_id": users["alice"].id, "amount": 5}, headers=admin
        )

        response = await client.get(f"{BASE}/logs?limit=10", headers=admin)

        assert response.status_code == 200
        logs = response.json()
        assert [log["action_type"] for log in logs] == ["manual_xp", "setting_update"]
        assert logs[0]["admin_username"] == "root"
        assert logs[0]["action_data"]["amount"] == 5
