"""Reputation formula tests."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import add_rows, set_setting, utc
from souk.db.models import Message, Order, ReputationScore, UserGamification, UserReport, UserReview
from souk.gamification.reputation_service import (
    ReputationFactors,
    average_response_minutes,
    calculate_reputation_score,
    calculate_trust_score,
    get_reputation_level,
)


class TestScore:
    def test_feedback_and_sales(self):
        f = ReputationFactors(positive_feedback=10, completed_sales=10)
        assert calculate_reputation_score(f) == 60

    @pytest.mark.parametrize(("avg", "bonus"), [(3, 30), (10, 20), (45, 10), (90, 0), (0, 0)])
    def test_response_bonus_tiers(self, avg, bonus):
        assert calculate_reputation_score(ReputationFactors(avg_response_minutes=avg)) == bonus

    def test_penalties_floor_at_zero(self):
        f = ReputationFactors(positive_feedback=1, negative_feedback=5, reports_against=3)
        assert calculate_reputation_score(f) == 0


class TestTrust:
    def test_neutral_start(self):
        assert calculate_trust_score(ReputationFactors()) == 50

    def test_positive_feedback_capped(self):
        assert calculate_trust_score(ReputationFactors(positive_feedback=100)) == 80

    def test_fast_responder(self):
        assert calculate_trust_score(ReputationFactors(avg_response_minutes=12)) == 60

    def test_clamped(self):
        assert calculate_trust_score(ReputationFactors(reports_against=10)) == 0
        assert calculate_trust_score(ReputationFactors(positive_feedback=50, avg_response_minutes=1)) == 90

    def test_bounds_for_any_combination(self):
        for pos in (0, 7, 200):
            for neg in (0, 3, 40):
                for reports in (0, 2, 9):
                    f = ReputationFactors(pos, neg, pos, 20.0, reports)
                    assert 0 <= calculate_trust_score(f) <= 100
                    assert calculate_reputation_score(f) >= 0


class TestLevels:
    @pytest.mark.parametrize(
        ("score", "level"),
        [(0, "Beginner"), (49, "Beginner"), (50, "Rising Seller"), (150, "Established Seller"),
         (300, "Trusted Seller"), (499, "Trusted Seller"), (500, "Elite Seller")],
    )
    def test_step_function(self, score, level):
        assert get_reputation_level(score) == level


class TestResponseTime:
    def test_pairs_received_with_next_reply(self):
        t0 = datetime(2026, 1, 1, 12, 0)
        rows = [
            (1, 2, t0),
            (1, 7, t0 + timedelta(minutes=10)),
            (2, 3, t0),
            (2, 7, t0 + timedelta(minutes=20)),
        ]
        assert average_response_minutes(rows, 7) == 15.0

    def test_replies_after_a_day_are_ignored(self):
        t0 = datetime(2026, 1, 1, 12, 0)
        rows = [(1, 2, t0), (1, 7, t0 + timedelta(days=2))]
        assert average_response_minutes(rows, 7) == 0.0

    def test_no_messages(self):
        assert average_response_minutes([], 7) == 0.0


class TestUpdateReputation:
    @pytest.mark.asyncio
    async def test_recomputes_and_mirrors(self, gam, users, seeded):
        alice, bob = users["alice"], users["bob"]
        await add_rows(
            seeded,
            UserGamification(user_id=alice.id),
            *[Order(buyer_id=bob.id, seller_id=alice.id, status="delivered") for _ in range(3)],
            Order(buyer_id=bob.id, seller_id=alice.id, status="pending"),
            UserReview(reviewed_user_id=alice.id, reviewer_id=bob.id, review_type="seller", rating=1),
            UserReview(reviewed_user_id=alice.id, reviewer_id=bob.id, review_type="seller", rating=5),
            Message(chat_id=9, sender_id=bob.id, receiver_id=alice.id, created_at=utc(hours=-2)),
            Message(chat_id=9, sender_id=alice.id, receiver_id=bob.id, created_at=utc(hours=-2) + timedelta(minutes=4)),
        )

        result = await gam.reputation.update_reputation(alice.id)

        assert result is not None
        assert result.factors.positive_feedback == 3
        assert result.factors.completed_sales == 3
        assert result.factors.negative_feedback == 1
        assert result.factors.avg_response_minutes == pytest.approx(4.0)
        # 3*4 + 3*2 + 30 - 5
        assert result.score == 43
        assert result.level == "Beginner"
        assert result.trust_score == 50 + 6 + 10 - 10

        async with seeded() as db:
            row = await db.get(ReputationScore, alice.id)
            gam_row = await db.get(UserGamification, alice.id)
        assert row.reputation_score == 43
        assert row.trust_score == 56
        assert gam_row.reputation_score == 43

    @pytest.mark.asyncio
    async def test_upsert_replaces_previous(self, gam, users, seeded):
        alice, bob = users["alice"], users["bob"]
        await gam.reputation.update_reputation(alice.id)
        await add_rows(seeded, UserReport(reported_user_id=alice.id, reporter_id=bob.id))
        result = await gam.reputation.update_reputation(alice.id)

        assert result.factors.reports_against == 1
        async with seeded() as db:
            rows = (await db.execute(select(ReputationScore))).scalars().all()
        assert len(rows) == 1
        assert rows[0].trust_score == 35

    @pytest.mark.asyncio
    async def test_disabled_feature(self, gam, users, seeded):
        await set_setting(seeded, "gamification_reputation_enabled", "false")
        assert await gam.reputation.update_reputation(users["alice"].id) is None

    @pytest.mark.asyncio
    async def test_get_user_reputation_computes_on_first_read(self, gam, users):
        row = await gam.reputation.get_user_reputation(users["carol"].id)
        assert row is not None
        assert row.reputation_level == "Beginner"
        assert row.trust_score == 50
