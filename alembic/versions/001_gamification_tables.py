"""Gamification tables.

Creates system_settings, user_gamification, xp_rules, xp_transactions,
badges, user_badges, leaderboards, reputation_scores, seasonal_events,
gamification_events_log and admin_gamification_logs. The marketplace
tables (users, posts, orders, ...) are owned by other services.

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Runtime settings ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS system_settings (
            setting_key VARCHAR(128) PRIMARY KEY,
            setting_value TEXT NOT NULL,
            description TEXT,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Per-user summary ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_gamification (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0,
            current_level INTEGER NOT NULL DEFAULT 1,
            reputation_score INTEGER NOT NULL DEFAULT 0,
            reputation_level VARCHAR(32) NOT NULL DEFAULT 'Beginner',
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_login_date DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_gamification_total_xp_check CHECK (total_xp >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_gamification_level
        ON user_gamification(current_level DESC, total_xp DESC)
    """)

    # --- XP rules & ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_rules (
            id SERIAL PRIMARY KEY,
            action_type VARCHAR(64) UNIQUE NOT NULL,
            xp_amount INTEGER NOT NULL,
            entity_type VARCHAR(32),
            category VARCHAR(32),
            description TEXT,
            daily_limit INTEGER,
            is_active BOOLEAN NOT NULL DEFAULT true,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            action_type VARCHAR(64) NOT NULL,
            xp_amount INTEGER NOT NULL,
            entity_type VARCHAR(32),
            entity_id BIGINT,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_tx_user_action_created
        ON xp_transactions(user_id, action_type, created_at)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            slug VARCHAR(64) UNIQUE NOT NULL,
            description TEXT,
            category VARCHAR(32),
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            icon_url VARCHAR(256),
            criteria JSONB NOT NULL DEFAULT '{}',
            benefits JSONB NOT NULL DEFAULT '{}',
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            progress_data JSONB,
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)

    # --- Leaderboards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboards (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            leaderboard_type VARCHAR(32) NOT NULL,
            rank INTEGER NOT NULL,
            score DOUBLE PRECISION NOT NULL DEFAULT 0,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT leaderboards_type_user_key UNIQUE (leaderboard_type, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboards_type_rank
        ON leaderboards(leaderboard_type, rank)
    """)

    # --- Reputation ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reputation_scores (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            reputation_score INTEGER NOT NULL DEFAULT 0,
            reputation_level VARCHAR(32) NOT NULL DEFAULT 'Beginner',
            positive_feedback_count INTEGER NOT NULL DEFAULT 0,
            negative_feedback_count INTEGER NOT NULL DEFAULT 0,
            completed_sales_count INTEGER NOT NULL DEFAULT 0,
            response_time_avg_minutes DOUBLE PRECISION NOT NULL DEFAULT 0,
            reports_against_count INTEGER NOT NULL DEFAULT 0,
            trust_score INTEGER NOT NULL DEFAULT 50,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT reputation_trust_range CHECK (trust_score BETWEEN 0 AND 100)
        )
    """)

    # --- Seasonal events ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS seasonal_events (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            xp_multiplier DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            badge_rewards JSONB NOT NULL DEFAULT '[]',
            event_rules JSONB NOT NULL DEFAULT '{}',
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT seasonal_events_multiplier_check CHECK (xp_multiplier >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_seasonal_events_window
        ON seasonal_events(start_date, end_date)
        WHERE is_active = true
    """)

    # --- Audit ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gamification_events_log (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            event_type VARCHAR(32) NOT NULL,
            event_data JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_gamification_events_user
        ON gamification_events_log(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS admin_gamification_logs (
            id BIGSERIAL PRIMARY KEY,
            admin_id BIGINT NOT NULL REFERENCES users(id),
            action_type VARCHAR(32) NOT NULL,
            action_data JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS admin_gamification_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS gamification_events_log CASCADE")
    op.execute("DROP TABLE IF EXISTS seasonal_events CASCADE")
    op.execute("DROP TABLE IF EXISTS reputation_scores CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboards CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badges CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_rules CASCADE")
    op.execute("DROP TABLE IF EXISTS user_gamification CASCADE")
    op.execute("DROP TABLE IF EXISTS system_settings CASCADE")
