"""Tests for leaderboard rebuilds and reads."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from conftest import add_rows, set_profile, set_setting, utc
from souk.db.models import Comment, LeaderboardEntry, Like, Order, Post
from souk.gamification.leaderboard_service import LEADERBOARD_TYPES, LeaderboardEngine


async def _entries(sf, leaderboard_type: str) -> list[tuple[int, int, float]]:
    async with sf() as db:
        result = await db.execute(
            select(LeaderboardEntry.rank, LeaderboardEntry.user_id, LeaderboardEntry.score)
            .where(LeaderboardEntry.leaderboard_type == leaderboard_type)
            .order_by(LeaderboardEntry.rank)
        )
        return [tuple(row) for row in result]


class TestRebuild:
    """Each type is fully replaced with consecutive ranks starting at 1."""

    @pytest.mark.asyncio
    async def test_top_level_orders_by_level_then_xp(self, gam, users, seeded):
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await set_profile(seeded, carol.id, total_xp=10, current_level=1)
        await set_profile(seeded, bob.id, total_xp=450, current_level=3)
        await set_profile(seeded, alice.id, total_xp=500, current_level=3)

        counts = await gam.leaderboards.update_all_leaderboards()

        assert counts["top_level"] == 3
        assert await _entries(seeded, "top_level") == [
            (1, alice.id, 3.0),
            (2, bob.id, 3.0),
            (3, carol.id, 1.0),
        ]

    @pytest.mark.asyncio
    async def test_weekly_sellers(self, gam, users, seeded):
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await add_rows(
            seeded,
            *[Order(buyer_id=carol.id, seller_id=bob.id, status="delivered") for _ in range(2)],
            Order(buyer_id=carol.id, seller_id=alice.id, status="delivered"),
            Order(buyer_id=carol.id, seller_id=alice.id, status="pending"),
            *[Order(buyer_id=alice.id, seller_id=carol.id, status="delivered", created_at=utc(days=-10))
              for _ in range(3)],
        )

        await gam.leaderboards.rebuild("weekly_sellers")

        assert await _entries(seeded, "weekly_sellers") == [(1, bob.id, 2.0), (2, alice.id, 1.0)]

    @pytest.mark.asyncio
    async def test_monthly_creators(self, gam, users, seeded):
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await add_rows(
            seeded,
            Post(id=1, user_id=alice.id),
            Post(id=2, user_id=bob.id),
            Post(id=3, user_id=carol.id, created_at=utc(days=-45)),
        )
        await add_rows(
            seeded,
            Like(user_id=bob.id, target_type="post", target_id=1),
            Like(user_id=carol.id, target_type="post", target_id=1),
            Like(user_id=alice.id, target_type="comment", target_id=2),
            Like(user_id=alice.id, target_type="post", target_id=3),
        )

        await gam.leaderboards.rebuild("monthly_creators")

        assert await _entries(seeded, "monthly_creators") == [(1, alice.id, 2.0), (2, bob.id, 0.0)]
        top = await gam.leaderboards.get_leaderboard("monthly_creators")
        assert top[0]["metadata"] == {"likes": 2, "posts": 1}

    @pytest.mark.asyncio
    async def test_top_helpers(self, gam, users, seeded):
        alice, bob = users["alice"], users["bob"]
        await set_profile(seeded, alice.id)
        await set_profile(seeded, bob.id)
        await add_rows(seeded, Post(id=1, user_id=alice.id))
        await add_rows(
            seeded,
            *[Comment(post_id=1, user_id=bob.id) for _ in range(3)],
            Like(user_id=alice.id, target_type="post", target_id=1),
        )

        await gam.leaderboards.rebuild("top_helpers")

        assert await _entries(seeded, "top_helpers") == [(1, bob.id, 3.0), (2, alice.id, 1.0)]

    @pytest.mark.asyncio
    async def test_rebuild_replaces_previous_rows(self, gam, users, seeded):
        alice, bob = users["alice"], users["bob"]
        await set_profile(seeded, alice.id, total_xp=500, current_level=3)
        await gam.leaderboards.update_all_leaderboards()

        await set_profile(seeded, bob.id, total_xp=2000, current_level=5)
        await gam.leaderboards.update_all_leaderboards()

        assert await _entries(seeded, "top_level") == [(1, bob.id, 5.0), (2, alice.id, 3.0)]
        async with seeded() as db:
            total = (await db.execute(
                select(func.count(LeaderboardEntry.id)).where(LeaderboardEntry.leaderboard_type == "top_level")
            )).scalar_one()
        assert total == 2

    @pytest.mark.asyncio
    async def test_size_limit(self, seeded, gate, users):
        for user in users.values():
            await set_profile(seeded, user.id, total_xp=user.id * 100)
        engine = LeaderboardEngine(seeded, gate, size=2)

        assert await engine.rebuild("top_level") == 2

    @pytest.mark.asyncio
    async def test_failed_type_keeps_old_rows(self, gam, users, seeded):
        await set_profile(seeded, users["alice"].id, total_xp=500, current_level=3)
        await gam.leaderboards.update_all_leaderboards()
        before = await _entries(seeded, "top_level")

        with patch.dict(
            "souk.gamification.leaderboard_service._SOURCES",
            {"top_level": AsyncMock(side_effect=RuntimeError("statement timeout"))},
        ):
            counts = await gam.leaderboards.update_all_leaderboards()

        assert counts["top_level"] is None
        assert counts["top_helpers"] == 1
        assert await _entries(seeded, "top_level") == before

    @pytest.mark.asyncio
    async def test_skipped_while_running(self, gam):
        async with gam.leaderboards._lock:
            assert gam.leaderboards.is_updating is True
            assert await gam.leaderboards.update_all_leaderboards() is None
        assert gam.leaderboards.is_updating is False

    @pytest.mark.asyncio
    async def test_skipped_when_disabled(self, gam, seeded):
        await set_setting(seeded, "gamification_leaderboards_enabled", "false")
        assert await gam.leaderboards.update_all_leaderboards() is None

    @pytest.mark.asyncio
    async def test_unknown_type(self, gam):
        with pytest.raises(ValueError):
            await gam.leaderboards.rebuild("richest")


class TestReads:
    @pytest.mark.asyncio
    async def test_get_leaderboard_joins_user_details(self, gam, users, seeded):
        alice = users["alice"]
        await set_profile(seeded, alice.id, total_xp=500, current_level=3)
        await gam.leaderboards.update_all_leaderboards()

        entries = await gam.leaderboards.get_leaderboard("top_level", limit=10)

        assert entries == [{
            "rank": 1,
            "user_id": alice.id,
            "username": "alice",
            "first_name": "Alice",
            "last_name": None,
            "profile_image": None,
            "score": 3.0,
            "current_level": 3,
            "total_xp": 500,
            "metadata": {"total_xp": 500},
        }]

    @pytest.mark.asyncio
    async def test_user_rank(self, gam, users, seeded):
        await set_profile(seeded, users["alice"].id, total_xp=500, current_level=3)
        await set_profile(seeded, users["bob"].id, total_xp=100, current_level=2)
        await gam.leaderboards.update_all_leaderboards()

        assert await gam.leaderboards.get_user_rank(users["bob"].id, "top_level") == {"rank": 2, "score": 2.0}
        assert await gam.leaderboards.get_user_rank(users["carol"].id, "top_level") is None

    @pytest.mark.asyncio
    async def test_user_rank_unknown_type(self, gam, users):
        with pytest.raises(ValueError):
            await gam.leaderboards.get_user_rank(users["bob"].id, "richest")

    def test_types_catalogue(self):
        types = LeaderboardEngine.get_leaderboard_types()
        assert [t["type"] for t in types] == list(LEADERBOARD_TYPES)
        assert all(t["name"] and t["description"] for t in types)
