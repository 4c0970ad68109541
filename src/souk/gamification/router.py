"""User-facing gamification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from souk.auth.dependencies import get_current_user
from souk.db.models import Badge, User, UserBadge, XPTransaction
from souk.gamification.dependencies import get_gamification
from souk.gamification.leaderboard_service import LEADERBOARD_TYPES
from souk.gamification.schemas import (
    BadgeProgressResponse,
    BadgeResponse,
    EarnedBadgeResponse,
    LeaderboardResponse,
    LeaderboardTypeResponse,
    ProfileResponse,
    ReputationResponse,
    SeasonalEventResponse,
    UserRankResponse,
    XPAwardResponse,
    XPBreakdownEntry,
    XPTransactionResponse,
)
from souk.gamification.service import GamificationService

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])


def tx_response(tx: XPTransaction) -> XPTransactionResponse:
    return XPTransactionResponse(
        id=tx.id,
        action_type=tx.action_type,
        xp_amount=tx.xp_amount,
        entity_type=tx.entity_type,
        entity_id=tx.entity_id,
        metadata=tx.tx_metadata or {},
        created_at=tx.created_at,
    )


def earned_badge_response(ub: UserBadge) -> EarnedBadgeResponse:
    badge: Badge = ub.badge
    return EarnedBadgeResponse(
        **BadgeResponse.model_validate(badge).model_dump(),
        earned_at=ub.earned_at,
        progress_data=ub.progress_data,
    )


async def _profile(gam: GamificationService, user_id: int) -> ProfileResponse:
    data = await gam.get_user_profile(user_id)
    return ProfileResponse(
        **{k: v for k, v in data.items() if k not in ("badges", "recent_xp")},
        badges=[earned_badge_response(ub) for ub in data["badges"]],
        recent_xp=[tx_response(tx) for tx in data["recent_xp"]],
    )


# ── Profile ──


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    """Own profile: level, XP, streak, badges and the last 10 XP entries."""
    return await _profile(gam, user.id)


@router.get("/profile/{user_id}", response_model=ProfileResponse)
async def get_user_profile(
    user_id: int,
    _user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    return await _profile(gam, user_id)


# ── XP ──


@router.get("/xp/history", response_model=list[XPTransactionResponse])
async def get_xp_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    history = await gam.xp.get_user_xp_history(user.id, limit=limit, offset=offset)
    return [tx_response(tx) for tx in history]


@router.get("/xp/breakdown", response_model=list[XPBreakdownEntry])
async def get_xp_breakdown(
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.xp.get_xp_breakdown(user.id)


@router.post("/claim-daily-bonus", response_model=XPAwardResponse)
async def claim_daily_bonus(
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    award = await gam.claim_daily_bonus(user.id)
    if award is None:
        raise HTTPException(status_code=400, detail="Daily bonus already claimed or unavailable")
    return XPAwardResponse(
        xp_earned=award.xp_earned,
        total_xp=award.total_xp,
        current_level=award.current_level,
        leveled_up=award.leveled_up,
    )


# ── Badges ──


@router.get("/badges", response_model=list[BadgeResponse])
async def list_badges(gam: GamificationService = Depends(get_gamification)):
    """Active badge catalogue, common first."""
    return await gam.badges.get_all_badges()


@router.get("/badges/me", response_model=list[EarnedBadgeResponse])
async def my_badges(
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    return [earned_badge_response(ub) for ub in await gam.badges.get_user_badges(user.id)]


@router.get("/badges/{badge_id}/progress", response_model=BadgeProgressResponse)
async def badge_progress(
    badge_id: int,
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    data = await gam.badges.get_badge_progress(user.id, badge_id)
    return BadgeProgressResponse(
        badge=BadgeResponse.model_validate(data["badge"]),
        earned=data["earned"],
        progress=data["progress"],
    )


# ── Leaderboards ──


@router.get("/leaderboards/types", response_model=list[LeaderboardTypeResponse])
async def leaderboard_types(gam: GamificationService = Depends(get_gamification)):
    return gam.leaderboards.get_leaderboard_types()


@router.get("/leaderboards", response_model=LeaderboardResponse)
async def get_leaderboard(
    type: str = Query("top_level"),  # noqa: A002
    limit: int = Query(50, ge=1, le=100),
    gam: GamificationService = Depends(get_gamification),
):
    if type not in LEADERBOARD_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown leaderboard type: {type}")
    if not await gam.gate.is_feature_enabled("leaderboards"):
        return LeaderboardResponse(type=type, entries=[])
    return LeaderboardResponse(type=type, entries=await gam.leaderboards.get_leaderboard(type, limit))


@router.get("/leaderboards/{leaderboard_type}/rank", response_model=UserRankResponse)
async def get_my_rank(
    leaderboard_type: str,
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    try:
        rank = await gam.leaderboards.get_user_rank(user.id, leaderboard_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if rank is None:
        return UserRankResponse(type=leaderboard_type)
    return UserRankResponse(type=leaderboard_type, **rank)


# ── Reputation / events ──


@router.get("/reputation", response_model=ReputationResponse)
async def my_reputation(
    user: User = Depends(get_current_user),
    gam: GamificationService = Depends(get_gamification),
):
    row = await gam.reputation.get_user_reputation(user.id)
    if row is None:
        raise HTTPException(status_code=404, detail="Reputation unavailable")
    return row


@router.get("/events", response_model=list[SeasonalEventResponse])
async def active_events(gam: GamificationService = Depends(get_gamification)):
    return await gam.events.get_active_events()
