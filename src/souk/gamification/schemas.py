"""Pydantic models for gamification endpoints.

Request bodies for partial updates are *patch* models: every field is
optional and services apply only ``model_dump(exclude_unset=True)``.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Rarity = Literal["common", "rare", "epic", "legendary"]


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


# --- XP ---


class XPAwardResponse(BaseModel):
    xp_earned: int
    total_xp: int
    current_level: int
    leveled_up: bool


class LevelProgress(BaseModel):
    level: int
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_level_xp: int


class XPTransactionResponse(BaseModel):
    id: int
    action_type: str
    xp_amount: int
    entity_type: str | None = None
    entity_id: int | None = None
    metadata: dict[str, Any] = {}
    created_at: datetime


class XPBreakdownEntry(BaseModel):
    action_type: str
    total_xp: int
    action_count: int


class XPRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action_type: str
    xp_amount: int
    entity_type: str | None = None
    category: str | None = None
    description: str | None = None
    daily_limit: int | None = None
    is_active: bool


class XPRulePatch(BaseModel):
    xp_amount: int | None = None
    daily_limit: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    description: str | None = None


class ManualXPRequest(BaseModel):
    user_id: int
    amount: int
    reason: str | None = None

    @model_validator(mode="after")
    def _nonzero(self) -> ManualXPRequest:
        if self.amount == 0:
            raise ValueError("amount must be non-zero")
        return self


class ManualXPResponse(BaseModel):
    transaction_id: int
    user_id: int
    amount: int
    total_xp: int
    current_level: int


# --- Badges ---


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: str | None = None
    category: str | None = None
    rarity: str
    icon_url: str | None = None
    criteria: dict[str, Any] = {}
    benefits: dict[str, Any] = {}
    is_active: bool = True


class EarnedBadgeResponse(BadgeResponse):
    earned_at: datetime
    progress_data: dict[str, Any] | None = None


class CriterionProgress(BaseModel):
    current: int
    required: int
    percentage: float


class BadgeProgressResponse(BaseModel):
    badge: BadgeResponse
    earned: bool
    progress: dict[str, CriterionProgress]


class BadgeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    slug: str | None = Field(default=None, max_length=64)
    description: str | None = None
    category: str | None = None
    rarity: Rarity = "common"
    icon_url: str | None = None
    criteria: dict[str, Any] = {}
    benefits: dict[str, Any] = {}

    @model_validator(mode="after")
    def _default_slug(self) -> BadgeCreate:
        if not self.slug:
            self.slug = slugify(self.name)
        return self


class BadgePatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    category: str | None = None
    rarity: Rarity | None = None
    icon_url: str | None = None
    criteria: dict[str, Any] | None = None
    benefits: dict[str, Any] | None = None
    is_active: bool | None = None


# --- Leaderboards ---


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    profile_image: str | None = None
    score: float
    current_level: int = 1
    total_xp: int = 0
    metadata: dict[str, Any] = {}


class LeaderboardResponse(BaseModel):
    type: str
    entries: list[LeaderboardEntryResponse]


class LeaderboardTypeResponse(BaseModel):
    type: str
    name: str
    description: str


class UserRankResponse(BaseModel):
    type: str
    rank: int | None = None
    score: float = 0


class LeaderboardUpdateResponse(BaseModel):
    started: bool


# --- Reputation ---


class ReputationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    reputation_score: int
    reputation_level: str
    positive_feedback_count: int
    negative_feedback_count: int
    completed_sales_count: int
    response_time_avg_minutes: float
    reports_against_count: int
    trust_score: int


# --- Events ---


class SeasonalEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    xp_multiplier: float
    badge_rewards: list[Any] = []
    event_rules: dict[str, Any] = {}
    is_active: bool


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    description: str | None = None
    start_date: datetime
    end_date: datetime
    xp_multiplier: float = Field(default=1.0, ge=0)
    badge_rewards: list[str] = []
    event_rules: dict[str, Any] = {}

    @model_validator(mode="after")
    def _window(self) -> EventCreate:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class EventPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    xp_multiplier: float | None = Field(default=None, ge=0)
    badge_rewards: list[str] | None = None
    event_rules: dict[str, Any] | None = None
    is_active: bool | None = None


# --- Profile / system ---


class ProfileResponse(BaseModel):
    user_id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    profile_image: str | None = None
    total_xp: int
    current_level: int
    level_progress: LevelProgress
    reputation_score: int
    reputation_level: str
    current_streak: int
    longest_streak: int
    badges: list[EarnedBadgeResponse] = []
    recent_xp: list[XPTransactionResponse] = []


class SettingResponse(BaseModel):
    key: str
    value: str


class SettingUpdate(BaseModel):
    value: str = Field(max_length=256)


class SettingsResponse(BaseModel):
    settings: dict[str, str]


class SystemStatsResponse(BaseModel):
    total_users: int
    total_xp_awarded: int
    total_badges_awarded: int
    average_level: float
    active_events: int
    top_users: list[dict[str, Any]] = []
    popular_badges: list[dict[str, Any]] = []


class AdminLogEntry(BaseModel):
    id: int
    admin_id: int
    admin_username: str | None = None
    action_type: str
    action_data: dict[str, Any] = {}
    created_at: datetime
