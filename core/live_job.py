from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, Optional, Set

from core.errors import StatusSourceError
from core.fanout import FanoutResult, NotificationFanout
from core.models import TrackedEntity
from core.registry import EntityRegistry
from core.state_machine import Decision, Transition, decide
from services.discord.embeds import ended_card, live_card
from services.twitch.api.helix import HelixStatusClient
from services.twitch.models.stream import StatusRecord
from shared.logging.logger import get_logger

log = get_logger("core.live_job")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StatusLookup:
    """
    Result of one tick's status query.

    Entities in `failed` are unknown this tick and must be skipped.
    Entities neither failed nor in `records` are offline.
    """

    records: Dict[str, StatusRecord] = field(default_factory=dict)
    failed: Set[str] = field(default_factory=set)

    def is_known(self, entity_id: str) -> bool:
        return entity_id not in self.failed

    def get(self, entity_id: str) -> Optional[StatusRecord]:
        return self.records.get(entity_id)


@dataclass
class EvaluationOutcome:
    entity_id: str
    transition: Optional[Transition] = None
    fanout: Optional[FanoutResult] = None
    persisted: bool = False
    skipped: bool = False


class LiveStatusJob:
    """
    Evaluates one tracked entity for one tick.

    The worker owns its copy of the entity for the whole evaluation and
    commits it back to the registry when something meaningful changed.
    """

    def __init__(
        self,
        *,
        registry: EntityRegistry,
        status_client: HelixStatusClient,
        fanout: NotificationFanout,
        display_tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._registry = registry
        self._status = status_client
        self._fanout = fanout
        self._display_tz = display_tz
        self._clock = clock

    # ------------------------------------------------------------

    async def lookup(self, entities: list[TrackedEntity]) -> StatusLookup:
        """
        Query live status for a batch of entities in one call.
        """
        ids = [entity.id for entity in entities]
        if not ids:
            return StatusLookup()

        try:
            records = await self._status.get_status(ids)
        except StatusSourceError as e:
            log.warning(f"[TWITCH_JOB] status lookup failed for {len(ids)} entities: {e}")
            return StatusLookup(failed=set(ids))

        return StatusLookup(records=records)

    # ------------------------------------------------------------

    async def evaluate(self, entity: TrackedEntity, lookup: StatusLookup) -> EvaluationOutcome:
        outcome = EvaluationOutcome(entity_id=entity.id)

        if not lookup.is_known(entity.id):
            log.debug(f"[{entity.name}] status unknown this tick; skipping")
            outcome.skipped = True
            return outcome

        status = lookup.get(entity.id)
        now = self._clock()
        decision = decide(entity, status, now)
        outcome.transition = decision.transition

        if not decision.requires_action:
            return outcome

        working = decision.entity

        if decision.transition is Transition.STARTED:
            log.info(
                f"[{working.name}] started streaming "
                f"{status.started_at.astimezone(timezone.utc).strftime('%H:%M:%S %Z')}"
            )
            await self._refresh_profile(working)
        elif decision.transition is Transition.UPDATE:
            log.debug(f"[{working.name}] updating cards")

        card = await self._build_card(decision, status, now)
        result = await self._fanout.apply(working, decision.intent, card)
        outcome.fanout = result

        if decision.transition is Transition.ENDED:
            log.info(
                f"[{working.name}] stopped streaming, length {working.stream_length()} ({result})"
            )
        elif result.failed:
            log.info(f"[{working.name}] {decision.transition.value} fan-out: {result}")

        if decision.transition is not Transition.UPDATE or result.handles_changed:
            outcome.persisted = await self._registry.update_after_cycle(working)

        return outcome

    # ------------------------------------------------------------

    async def _refresh_profile(self, entity: TrackedEntity) -> None:
        try:
            profiles = await self._status.get_profiles(ids=[entity.id])
        except StatusSourceError as e:
            log.warning(f"[{entity.name}] profile refresh failed: {e}")
            return

        profile = profiles.get(entity.id)
        if profile is None:
            return
        if profile.display_name:
            entity.display_name = profile.display_name
        if profile.profile_image_url:
            entity.profile_image_url = profile.profile_image_url

    async def _category_name(self, status: StatusRecord) -> str:
        if status.category_id:
            try:
                category = await self._status.get_metadata(status.category_id)
                if category.name:
                    return category.name
            except StatusSourceError as e:
                log.debug(f"category lookup failed for {status.category_id}: {e}")
        return status.category_name or "???"

    async def _build_card(self, decision: Decision, status: Optional[StatusRecord], now: datetime):
        if decision.transition is Transition.ENDED:
            return ended_card(decision.entity, tz=self._display_tz)

        category = await self._category_name(status)
        return live_card(decision.entity, status, category_name=category, now=now)
