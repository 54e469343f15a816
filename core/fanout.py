from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.errors import DeliveryFailed, DestinationMissing
from core.models import TrackedEntity
from core.state_machine import NotificationIntent
from services.discord.gateway import MessageGateway
from shared.logging.logger import get_logger

log = get_logger("core.fanout")


@dataclass
class FanoutResult:
    sent: int = 0
    edited: int = 0
    failed: int = 0
    skipped: int = 0
    handles_changed: bool = False

    @property
    def succeeded(self) -> int:
        return self.sent + self.edited

    def __str__(self) -> str:
        return (
            f"sent={self.sent} edited={self.edited} "
            f"failed={self.failed} skipped={self.skipped}"
        )


class NotificationFanout:
    """
    Delivers one entity's notification intent to every subscription.

    - Subscriptions are processed in list order
    - A failure at one destination is logged and never blocks the rest
    - Message handles are recorded on the entity passed in; the caller
      commits the entity afterwards
    - Missing destinations stay subscribed
    """

    def __init__(self, gateway: MessageGateway):
        self._gateway = gateway

    async def apply(
        self,
        entity: TrackedEntity,
        intent: NotificationIntent,
        card: Any,
    ) -> FanoutResult:
        result = FanoutResult()

        for sub in entity.subscriptions:
            try:
                if intent is NotificationIntent.STARTED:
                    sub.clear_handle()
                    sub.message_id = await self._gateway.send(sub.channel_id, card)
                    result.sent += 1
                    result.handles_changed = True

                elif intent is NotificationIntent.UPDATE:
                    if not sub.message_id:
                        sub.message_id = await self._gateway.send(sub.channel_id, card)
                        result.sent += 1
                        result.handles_changed = True
                    else:
                        await self._gateway.edit(sub.channel_id, sub.message_id, card)
                        result.edited += 1

                elif intent is NotificationIntent.ENDED:
                    if not sub.message_id:
                        log.debug(
                            f"[{entity.name}] No card to finalize in channel {sub.channel_id}"
                        )
                        result.skipped += 1
                    else:
                        await self._gateway.edit(sub.channel_id, sub.message_id, card)
                        result.edited += 1

            except DestinationMissing as e:
                result.failed += 1
                log.warning(
                    f"[{entity.name}] ({intent.value}) destination missing, left subscribed: "
                    f"guild={sub.guild_id} channel={sub.channel_id}: {e}"
                )
            except DeliveryFailed as e:
                result.failed += 1
                log.error(
                    f"[{entity.name}] ({intent.value}) delivery failed "
                    f"in channel {sub.channel_id}: {e}"
                )
            except Exception as e:
                result.failed += 1
                log.exception(
                    f"[{entity.name}] ({intent.value}) unexpected delivery error "
                    f"in channel {sub.channel_id}: {e}"
                )

        if intent is NotificationIntent.ENDED:
            for sub in entity.subscriptions:
                if sub.message_id:
                    sub.clear_handle()
                    result.handles_changed = True

        return result
