"""Admin gamification endpoints. Every write is recorded in the admin audit log."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from souk.auth.dependencies import get_current_admin
from souk.db.models import User
from souk.gamification.dependencies import get_gamification
from souk.gamification.schemas import (
    AdminLogEntry,
    BadgeCreate,
    BadgePatch,
    BadgeResponse,
    EventCreate,
    EventPatch,
    LeaderboardUpdateResponse,
    ManualXPRequest,
    ManualXPResponse,
    SeasonalEventResponse,
    SettingResponse,
    SettingsResponse,
    SettingUpdate,
    SystemStatsResponse,
    XPRulePatch,
    XPRuleResponse,
)
from souk.gamification.service import GamificationService

router = APIRouter(prefix="/api/v1/admin/gamification", tags=["Gamification Admin"])


# ── Settings ──


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    gam.gate.invalidate()
    return SettingsResponse(settings=await gam.gate.get_all())


@router.put("/settings/{key}", response_model=SettingResponse)
async def update_setting(
    key: str,
    body: SettingUpdate,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.update_setting(key, body.value, admin.id)


# ── XP rules ──


@router.get("/xp-rules", response_model=list[XPRuleResponse])
async def list_xp_rules(
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.xp.get_rules()


@router.put("/xp-rules/{rule_id}", response_model=XPRuleResponse)
async def update_xp_rule(
    rule_id: int,
    patch: XPRulePatch,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.xp.update_rule(rule_id, patch, admin.id)


@router.post("/manual-xp", response_model=ManualXPResponse)
async def manual_xp(
    body: ManualXPRequest,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    """Credit or debit XP directly, bypassing rules, caps and multipliers."""
    result = await gam.xp.adjust_xp(body.user_id, body.amount, admin.id, body.reason)
    return ManualXPResponse(
        transaction_id=result.transaction_id,
        user_id=result.user_id,
        amount=result.amount,
        total_xp=result.total_xp,
        current_level=result.current_level,
    )


# ── Badges ──


@router.get("/badges", response_model=list[BadgeResponse])
async def list_badges(
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.badges.list_badges()


@router.post("/badges", response_model=BadgeResponse, status_code=201)
async def create_badge(
    body: BadgeCreate,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    try:
        return await gam.badges.create_badge(body, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.put("/badges/{badge_id}", response_model=BadgeResponse)
async def update_badge(
    badge_id: int,
    patch: BadgePatch,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.badges.update_badge(badge_id, patch, admin.id)


@router.delete("/badges/{badge_id}", status_code=204)
async def delete_badge(
    badge_id: int,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    await gam.badges.delete_badge(badge_id, admin.id)
    return Response(status_code=204)


# ── Seasonal events ──


@router.get("/events", response_model=list[SeasonalEventResponse])
async def list_events(
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.events.get_all_events()


@router.post("/events", response_model=SeasonalEventResponse, status_code=201)
async def create_event(
    body: EventCreate,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.events.create_event(body, admin.id)


@router.put("/events/{event_id}", response_model=SeasonalEventResponse)
async def update_event(
    event_id: int,
    patch: EventPatch,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.events.update_event(event_id, patch, admin.id)


@router.delete("/events/{event_id}", status_code=204)
async def delete_event(
    event_id: int,
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    await gam.events.delete_event(event_id, admin.id)
    return Response(status_code=204)


# ── Leaderboards / stats / audit ──


@router.post("/leaderboards/update", response_model=LeaderboardUpdateResponse)
async def force_leaderboard_update(
    admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    """Rebuild all leaderboards now. ``started`` is false if disabled or already running."""
    return LeaderboardUpdateResponse(started=await gam.force_leaderboard_update(admin.id))


@router.get("/stats", response_model=SystemStatsResponse)
async def system_stats(
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.get_system_stats()


@router.get("/logs", response_model=list[AdminLogEntry])
async def admin_logs(
    limit: int = Query(50, ge=1, le=500),
    _admin: User = Depends(get_current_admin),
    gam: GamificationService = Depends(get_gamification),
):
    return await gam.get_admin_logs(limit)
