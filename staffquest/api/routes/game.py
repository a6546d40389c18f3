"""
staffquest.api.routes.game — Progression endpoints
====================================================

Thin HTTP layer over :class:`ProgressionEngine`.  Handlers are plain
``def`` so FastAPI runs them on its worker threads; engine errors are
mapped to status codes by the app-level handler in
:mod:`staffquest.api.main`.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from staffquest.api.deps import get_progression_engine
from staffquest.api.payloads import to_payload
from staffquest.database.models import XPActionType
from staffquest.engine.events import ProgressionTrigger, TriggerKind
from staffquest.services.progression_service import ProgressionEngine

router = APIRouter(prefix="/game", tags=["game"])


# ---------------------------------------------------------------------------
# Request bodies (camelCase on the wire)
# ---------------------------------------------------------------------------
class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(min_length=1, max_length=64)


class CheckinBody(_Body):
    display_name: str | None = Field(default=None, max_length=100)


class UserBody(_Body):
    pass


class ActionBody(_Body):
    action_type: str


class DrawBody(_Body):
    lucky_reset: bool = False


class GrantXPBody(_Body):
    amount: int
    action_type: XPActionType
    description: str = ""


class AwardBadgeBody(_Body):
    code: str = Field(min_length=1)


class DisplayNameBody(_Body):
    display_name: str = Field(min_length=1, max_length=100)


class TriggerBody(_Body):
    kind: TriggerKind
    display_name: str | None = Field(default=None, max_length=100)
    badge_code: str | None = None
    lucky_reset: bool = False


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
@router.post("/checkin")
def checkin(body: CheckinBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.check_in(body.user_id, body.display_name))


@router.post("/record-registration")
def record_registration(body: UserBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.record_action(body.user_id, XPActionType.REGISTER))


@router.post("/record-removal")
def record_removal(body: UserBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.record_action(body.user_id, XPActionType.REMOVE))


@router.post("/record-action")
def record_action(body: ActionBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.record_action(body.user_id, body.action_type))


@router.post("/record-draw")
def record_draw(body: DrawBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.record_draw(body.user_id, lucky_reset=body.lucky_reset))


@router.post("/grant-xp")
def grant_xp(body: GrantXPBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(
        engine.grant_xp(body.user_id, body.amount, body.action_type, body.description)
    )


@router.post("/award-badge")
def award_badge(body: AwardBadgeBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.award_badge(body.user_id, body.code))


@router.post("/display-name")
def update_display_name(
    body: DisplayNameBody,
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    name = engine.update_display_name(body.user_id, body.display_name)
    return {"userId": body.user_id, "displayName": name}


@router.post("/trigger")
def trigger(body: TriggerBody, engine: ProgressionEngine = Depends(get_progression_engine)):
    outcome = engine.handle_trigger(ProgressionTrigger(
        kind=body.kind,
        user_id=body.user_id,
        display_name=body.display_name,
        badge_code=body.badge_code,
        lucky_reset=body.lucky_reset,
    ))
    return to_payload(outcome)


# ---------------------------------------------------------------------------
# Read projections
# ---------------------------------------------------------------------------
@router.get("/user/{user_id}")
def user_game_data(user_id: str, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.get_user_game_data(user_id))


@router.get("/badges/{user_id}")
def user_badges(user_id: str, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.get_user_badges(user_id))


@router.get("/badges-all/{user_id}")
def all_badges_with_status(user_id: str, engine: ProgressionEngine = Depends(get_progression_engine)):
    return to_payload(engine.get_all_badges_with_status(user_id))


@router.get("/history/{user_id}")
def xp_history(
    user_id: str,
    limit: int = Query(50),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return to_payload(engine.get_xp_history(user_id, limit))


@router.get("/leaderboard")
def leaderboard(
    window: str = Query("weekly", alias="type"),
    limit: int = Query(10),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return to_payload(engine.get_leaderboard(window, limit))


@router.get("/daily-report")
def daily_report(
    day: date | None = Query(None, alias="date"),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return to_payload(engine.get_daily_report(day))


# ---------------------------------------------------------------------------
# Static config
# ---------------------------------------------------------------------------
@router.get("/levels")
def levels(engine: ProgressionEngine = Depends(get_progression_engine)):
    return engine.levels.to_list()


@router.get("/xp-rewards")
def xp_rewards(engine: ProgressionEngine = Depends(get_progression_engine)):
    return engine.xp_rewards.to_dict()


@router.get("/badge-catalog")
def badge_catalog(engine: ProgressionEngine = Depends(get_progression_engine)):
    return engine.badge_catalog.to_list()
