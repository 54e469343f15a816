"""
Discord Runtime Supervisor

Owns the lifecycle of the Discord runtime and of the poll scheduler
that depends on it.

Responsibilities:
- start the Discord client
- once the gateway is ready, wire the message gateway and start polling
- perform graceful shutdown (scheduler first, then Discord)

IMPORTANT:
- MUST be started by core.app
- MUST NOT create its own event loop
- MUST NOT install signal handlers
"""

from __future__ import annotations

import asyncio
from datetime import tzinfo, timezone
from typing import Any, Dict, List, Optional

from core.fanout import NotificationFanout
from core.live_job import LiveStatusJob
from core.registry import EntityRegistry
from core.scheduler import PollScheduler
from services.discord.client import DiscordClient
from services.discord.gateway import DiscordMessageGateway
from services.twitch.api.helix import HelixStatusClient
from shared.config.settings import PollSettings
from shared.logging.logger import get_logger

# NOTE: routed to Discord runtime log file
log = get_logger("discord.supervisor", runtime="discord")


class DiscordSupervisor:
    """
    Owns the Discord runtime lifecycle.

    Contract:
    - start() is awaitable and returns once tasks are scheduled
    - shutdown() is idempotent
    """

    def __init__(
        self,
        *,
        client: DiscordClient,
        registry: EntityRegistry,
        status_client: HelixStatusClient,
        poll: PollSettings,
        display_tz: tzinfo = timezone.utc,
        shutdown_timeout: float = 30.0,
    ):
        self._client = client
        self._registry = registry
        self._status_client = status_client
        self._poll = poll
        self._display_tz = display_tz
        self._shutdown_timeout = shutdown_timeout

        self._scheduler: Optional[PollScheduler] = None
        self._tasks: List[asyncio.Task] = []
        self._running: bool = False

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def start(self):
        """
        Start the Discord runtime.
        """
        if self._running:
            log.warning("Discord supervisor already running")
            return

        log.info("Starting Discord supervisor")

        # --------------------------------------------------
        # Discord client main loop
        # --------------------------------------------------
        bot = self._client.build_bot()
        client_task = asyncio.create_task(self._client.run())
        self._tasks.append(client_task)

        # --------------------------------------------------
        # Post-ready initialization (gateway + polling)
        # --------------------------------------------------
        async def _post_ready_init():
            try:
                await self._client.wait_until_ready()

                fanout = NotificationFanout(DiscordMessageGateway(bot))
                job = LiveStatusJob(
                    registry=self._registry,
                    status_client=self._status_client,
                    fanout=fanout,
                    display_tz=self._display_tz,
                )
                self._scheduler = PollScheduler(
                    registry=self._registry,
                    job=job,
                    interval=self._poll.interval_seconds,
                    max_concurrency=self._poll.max_concurrency,
                )
                await self._scheduler.start()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(f"Post-ready init failed, polling not started: {e}")

        self._tasks.append(asyncio.create_task(_post_ready_init()))

        self._running = True
        log.info("Discord supervisor started")

    async def wait_closed(self):
        """
        Block until the Discord client task exits.
        """
        if self._tasks:
            await asyncio.gather(self._tasks[0], return_exceptions=True)

    # --------------------------------------------------
    # Shutdown
    # --------------------------------------------------

    async def shutdown(self):
        """
        Gracefully shut down polling and the Discord runtime.
        """
        if not self._running:
            return

        log.info("Shutting down Discord supervisor")

        # --------------------------------------------------
        # Stop polling first; the in-flight batch may still post cards
        # --------------------------------------------------
        if self._scheduler:
            try:
                await self._scheduler.stop(timeout=self._shutdown_timeout)
            except Exception as e:
                log.warning(f"Poll scheduler shutdown error ignored: {e}")

        # --------------------------------------------------
        # Stop Discord client
        # --------------------------------------------------
        try:
            await self._client.shutdown()
        except Exception as e:
            log.warning(f"Discord client shutdown error ignored: {e}")

        # --------------------------------------------------
        # Cancel remaining tasks
        # --------------------------------------------------
        for task in self._tasks:
            if not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(
                *self._tasks,
                return_exceptions=True
            )

        self._tasks.clear()
        self._running = False

        log.info("Discord supervisor shutdown complete")

    # --------------------------------------------------
    # Read-only Introspection
    # --------------------------------------------------

    def scheduler_snapshot(self) -> Dict[str, Any]:
        return self._scheduler.snapshot() if self._scheduler else {}
