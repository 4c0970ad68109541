"""Seed data: runtime settings, XP rules and the starter badge catalogue.

Seeding is insert-if-absent. Rows an admin has edited are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from souk.db.models import Badge, SystemSetting, XPRule, utcnow
from souk.db.upsert import insert_for
from souk.gamification.settings_gate import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)

XP_RULE_SEED_DATA: list[dict] = [
    # Social
    {"action_type": "post_created", "xp_amount": 15, "entity_type": "post", "category": "social",
     "description": "Create a post"},
    {"action_type": "comment_created", "xp_amount": 5, "entity_type": "comment", "category": "social",
     "description": "Comment on a post"},
    {"action_type": "like_given", "xp_amount": 1, "entity_type": "like", "category": "social",
     "description": "Like a post or comment"},
    {"action_type": "like_received", "xp_amount": 2, "entity_type": "like", "category": "social",
     "description": "Receive a like"},
    {"action_type": "comment_received", "xp_amount": 3, "entity_type": "comment", "category": "social",
     "description": "Receive a comment on your post"},
    {"action_type": "follow_given", "xp_amount": 1, "entity_type": "user", "category": "social",
     "description": "Follow another user"},
    {"action_type": "follower_received", "xp_amount": 8, "entity_type": "user", "category": "social",
     "description": "Gain a follower"},
    # Marketplace
    {"action_type": "product_created", "xp_amount": 20, "entity_type": "product", "category": "marketplace",
     "description": "List a product"},
    {"action_type": "product_updated", "xp_amount": 5, "entity_type": "product", "category": "marketplace",
     "description": "Update a product listing"},
    {"action_type": "message_received_seller", "xp_amount": 3, "entity_type": "message",
     "category": "marketplace", "description": "Receive a buyer message as a seller"},
    {"action_type": "message_sent_buyer", "xp_amount": 2, "entity_type": "message",
     "category": "marketplace", "description": "Message a seller as a buyer"},
    {"action_type": "product_sold", "xp_amount": 30, "entity_type": "order", "category": "marketplace",
     "description": "Complete a sale"},
    {"action_type": "feedback_given", "xp_amount": 10, "entity_type": "review", "category": "marketplace",
     "description": "Leave feedback on a transaction"},
    {"action_type": "feedback_received_positive", "xp_amount": 25, "entity_type": "review",
     "category": "marketplace", "description": "Receive positive feedback"},
    # Engagement (capped once per UTC day)
    {"action_type": "daily_login", "xp_amount": 5, "category": "engagement", "daily_limit": 1,
     "description": "Log in for the day"},
    {"action_type": "daily_login_streak_3", "xp_amount": 10, "category": "engagement", "daily_limit": 1,
     "description": "Log in three days in a row"},
    {"action_type": "daily_login_streak_7", "xp_amount": 20, "category": "engagement", "daily_limit": 1,
     "description": "Log in seven days in a row"},
    {"action_type": "daily_actions_complete", "xp_amount": 10, "category": "engagement", "daily_limit": 1,
     "description": "Complete the daily actions"},
    {"action_type": "weekly_consistency", "xp_amount": 50, "category": "engagement",
     "description": "Stay active every day of the week"},
]

BADGE_SEED_DATA: list[dict] = [
    {
        "slug": "content-creator",
        "name": "Content Creator",
        "description": "Publish 50 posts",
        "category": "social",
        "rarity": "rare",
        "criteria": {"min_posts": 50},
    },
    {
        "slug": "top-commenter",
        "name": "Top Commenter",
        "description": "Write 200 comments",
        "category": "social",
        "rarity": "rare",
        "criteria": {"min_comments": 200},
    },
    {
        "slug": "popular-user",
        "name": "Popular",
        "description": "Receive 1,000 likes on your posts",
        "category": "social",
        "rarity": "epic",
        "criteria": {"min_likes_received": 1000},
    },
    {
        "slug": "trusted-seller",
        "name": "Trusted Seller",
        "description": "Collect 10 positive feedbacks",
        "category": "marketplace",
        "rarity": "epic",
        "criteria": {"min_positive_feedback": 10},
        "benefits": {"highlight_listings": True},
    },
    {
        "slug": "power-seller",
        "name": "Power Seller",
        "description": "Complete 50 sales",
        "category": "marketplace",
        "rarity": "legendary",
        "criteria": {"min_sales": 50},
        "benefits": {"highlight_listings": True, "featured_shop": True},
    },
    {
        "slug": "7-day-streak",
        "name": "Week Warrior",
        "description": "Log in seven days in a row",
        "category": "engagement",
        "rarity": "common",
        "criteria": {"min_streak_days": 7},
    },
    {
        "slug": "top-supporter",
        "name": "Top Supporter",
        "description": "Give 500 likes",
        "category": "social",
        "rarity": "rare",
        "criteria": {"min_likes_given": 500},
    },
    {
        "slug": "legend",
        "name": "Legend",
        "description": "Reach level 50",
        "category": "special",
        "rarity": "legendary",
        "criteria": {"min_level": 50},
    },
]


async def seed_settings(db: AsyncSession) -> None:
    now = utcnow()
    for item in DEFAULT_SETTINGS:
        await db.execute(
            insert_for(db, SystemSetting)
            .values(
                setting_key=item["key"],
                setting_value=item["value"],
                description=item["description"],
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["setting_key"])
        )


async def seed_xp_rules(db: AsyncSession) -> None:
    now = utcnow()
    for rule in XP_RULE_SEED_DATA:
        await db.execute(
            insert_for(db, XPRule)
            .values(is_active=True, updated_at=now, **rule)
            .on_conflict_do_nothing(index_elements=["action_type"])
        )


async def seed_badges(db: AsyncSession) -> None:
    now = utcnow()
    for badge in BADGE_SEED_DATA:
        values = {"benefits": {}, "is_active": True, "created_at": now, "updated_at": now, **badge}
        await db.execute(
            insert_for(db, Badge)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["slug"])
        )


async def seed_all(db: AsyncSession) -> None:
    """Insert default settings, rules and badges that are not present yet."""
    await seed_settings(db)
    await seed_xp_rules(db)
    await seed_badges(db)
    await db.commit()
    logger.info(
        "Seeded defaults (%d settings, %d XP rules, %d badges)",
        len(DEFAULT_SETTINGS), len(XP_RULE_SEED_DATA), len(BADGE_SEED_DATA),
    )
