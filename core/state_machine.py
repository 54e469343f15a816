"""
Per-entity live-status decision.

decide() is pure: given the entity as last committed, the status record
from this tick (None when the source reported the entity offline) and the
current time, it returns which transition fired and the entity as it
should look before notifications go out.

Rules, first match wins:

1. cooling off  - now - stream_end_time < 3 minutes: nothing
2. still offline - no record, phase OFFLINE or ENDED: nothing
3. started      - record, phase OFFLINE or ENDED: new cards everywhere
4. update       - record, phase LIVE: edit cards (send where none yet)
5. ended        - no record, phase LIVE: final card edit, handles cleared

A failed status lookup must never reach decide(); "unknown" is not
"offline".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from core.models import StreamPhase, TrackedEntity
from services.twitch.models.stream import StatusRecord

COOLING_OFF = timedelta(minutes=3)


class Transition(str, Enum):
    COOLING_OFF = "cooling_off"
    STILL_OFFLINE = "still_offline"
    STARTED = "started"
    UPDATE = "update"
    ENDED = "ended"


class NotificationIntent(str, Enum):
    STARTED = "started"
    UPDATE = "update"
    ENDED = "ended"


_INTENTS = {
    Transition.STARTED: NotificationIntent.STARTED,
    Transition.UPDATE: NotificationIntent.UPDATE,
    Transition.ENDED: NotificationIntent.ENDED,
}


@dataclass
class Decision:
    transition: Transition
    phase: StreamPhase
    entity: TrackedEntity

    @property
    def intent(self) -> Optional[NotificationIntent]:
        return _INTENTS.get(self.transition)

    @property
    def requires_action(self) -> bool:
        return self.intent is not None


def decide(
    previous: TrackedEntity,
    status: Optional[StatusRecord],
    now: datetime,
) -> Decision:
    phase = previous.phase()

    if previous.stream_end_time is not None and now - previous.stream_end_time < COOLING_OFF:
        return Decision(Transition.COOLING_OFF, phase, previous)

    is_live = status is not None

    if not is_live and phase is not StreamPhase.LIVE:
        return Decision(Transition.STILL_OFFLINE, phase, previous)

    entity = previous.copy()

    if is_live and phase is not StreamPhase.LIVE:
        entity.stream_start_time = status.started_at
        for sub in entity.subscriptions:
            sub.clear_handle()
        return Decision(Transition.STARTED, phase, entity)

    if is_live:
        return Decision(Transition.UPDATE, phase, entity)

    # Backdated so the cooling-off window is measured from the adjusted time.
    entity.stream_end_time = now - COOLING_OFF
    return Decision(Transition.ENDED, phase, entity)
