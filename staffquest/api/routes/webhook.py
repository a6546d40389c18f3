"""
staffquest.api.routes.webhook — Chat webhook adapter
======================================================

Receives message events from the store's chat bot relay, recognises the
check-in and fortune-draw keywords, and turns each into a
:class:`ProgressionTrigger`.  The engine call runs on a worker thread via
:func:`run_db`, so the event loop keeps accepting deliveries while a
trigger waits on its user's lock.

The reply is structured data only; rendering chat cards is the relay's job.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from staffquest.api.deps import get_progression_engine
from staffquest.api.payloads import to_payload
from staffquest.database.engine import run_db
from staffquest.engine.events import ProgressionTrigger, TriggerKind
from staffquest.errors import ProgressionError
from staffquest.services.progression_service import ProgressionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])

CHECKIN_KEYWORDS = ("簽到", "打卡", "報到", "checkin")
DRAW_KEYWORDS = ("抽籤", "抽", "運勢", "籤", "幸運", "占卜", "今日運勢", "draw")


class ChatEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = "message"
    user_id: str | None = Field(default=None, max_length=64)
    display_name: str | None = Field(default=None, max_length=100)
    text: str = ""
    timestamp: datetime | None = None
    lucky_reset: bool = False


class ChatDelivery(BaseModel):
    events: list[ChatEvent] = Field(default_factory=list)


def classify(text: str) -> TriggerKind | None:
    """Map message text to a trigger kind, or ``None`` for ordinary chat.

    Check-in keywords match anywhere in the text.  Draw keywords match the
    whole message, or anywhere when longer than one character.
    """
    text = text.strip()
    if not text:
        return None
    lowered = text.lower()
    if any(keyword in lowered for keyword in CHECKIN_KEYWORDS):
        return TriggerKind.CHECKIN
    if any(lowered == kw or (len(kw) > 1 and kw in lowered) for kw in DRAW_KEYWORDS):
        return TriggerKind.DRAW
    return None


@router.post("/chat")
async def chat_webhook(
    delivery: ChatDelivery,
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    outcomes: list[dict] = []
    for event in delivery.events:
        if event.type != "message" or not event.user_id:
            continue
        kind = classify(event.text)
        if kind is None:
            continue

        trigger = ProgressionTrigger(
            kind=kind,
            user_id=event.user_id,
            display_name=event.display_name,
            lucky_reset=event.lucky_reset,
            timestamp=event.timestamp,
        )
        try:
            outcome = await run_db(engine.handle_trigger, trigger)
        except ProgressionError as exc:
            outcomes.append({
                "kind": kind.value,
                "userId": event.user_id,
                "error": exc.to_dict(),
            })
            continue
        outcomes.append(to_payload(outcome))

    logger.debug("Chat delivery: %d event(s), %d trigger(s)", len(delivery.events), len(outcomes))
    return {"outcomes": outcomes}
