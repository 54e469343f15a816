import asyncio
import signal
import sys

from dotenv import load_dotenv

from core.cooldowns import CooldownGate
from core.errors import ConfigError, PersistenceFailed
from core.ratelimits import RateLimitTracker
from core.registry import EntityRegistry
from services.discord.client import DiscordClient
from services.discord.commands.public import PublicCommandHandler
from services.discord.commands.twitch import TwitchCommandHandler
from services.discord.logging import DiscordLogAdapter
from services.discord.permissions import DiscordPermissionResolver
from services.discord.runtime.supervisor import DiscordSupervisor
from services.twitch.api.helix import HelixStatusClient
from shared.config.settings import load_settings
from shared.logging.logger import get_logger
from shared.storage.entity_store import EntityStore
from shared.storage.paths import resolve_data_path

log = get_logger("core.app")


async def main(stop_event: asyncio.Event) -> int:
    # --------------------------------------------------
    # ENV + SETTINGS
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info("StreamAlerts booting")

    try:
        settings = load_settings()
    except ConfigError as e:
        log.error(f"Configuration error: {e}")
        return 1

    # --------------------------------------------------
    # LOAD TRACKED ENTITIES
    # --------------------------------------------------
    try:
        store = EntityStore(
            resolve_data_path(settings.database.path),
            default_cooldown=settings.command_cooldown_seconds,
        )
        registry = EntityRegistry(store)
        await registry.load()
    except PersistenceFailed as e:
        log.error(f"Entity store unavailable: {e}")
        return 1

    # --------------------------------------------------
    # CORE SYSTEMS
    # --------------------------------------------------
    rate_limits = RateLimitTracker()
    status_client = HelixStatusClient(
        client_id=settings.twitch.client_id,
        client_secret=settings.twitch.client_secret,
        access_token=settings.twitch.access_token,
        rate_limits=rate_limits,
    )
    cooldowns = CooldownGate()
    discord_log = DiscordLogAdapter()
    permissions = DiscordPermissionResolver(owner_id=settings.discord.owner_id)

    twitch_handler = TwitchCommandHandler(
        registry=registry,
        status_client=status_client,
        cooldowns=cooldowns,
        store=store,
        logger=discord_log,
    )
    public_handler = PublicCommandHandler(
        registry=registry,
        store=store,
        cooldowns=cooldowns,
        logger=discord_log,
    )

    supervisor: DiscordSupervisor | None = None

    def _scheduler_snapshot():
        return supervisor.scheduler_snapshot() if supervisor else {}

    client = DiscordClient(
        settings=settings.discord,
        store=store,
        twitch_handler=twitch_handler,
        public_handler=public_handler,
        permissions=permissions,
        logger=discord_log,
        scheduler_snapshot=_scheduler_snapshot,
    )
    supervisor = DiscordSupervisor(
        client=client,
        registry=registry,
        status_client=status_client,
        poll=settings.poll,
        display_tz=settings.tzinfo,
    )

    # --------------------------------------------------
    # START
    # --------------------------------------------------
    await supervisor.start()

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL (OR DISCORD EXITS)
    # --------------------------------------------------
    stop_waiter = asyncio.create_task(stop_event.wait())
    closed_waiter = asyncio.create_task(supervisor.wait_closed())
    await asyncio.wait(
        {stop_waiter, closed_waiter},
        return_when=asyncio.FIRST_COMPLETED,
    )
    for waiter in (stop_waiter, closed_waiter):
        if not waiter.done():
            waiter.cancel()

    log.info("Shutdown initiated")

    # --------------------------------------------------
    # ORDERLY SHUTDOWN
    # --------------------------------------------------
    try:
        await supervisor.shutdown()
    except Exception as e:
        log.warning(f"Supervisor shutdown error ignored: {e}")

    log.info("StreamAlerts stopped")
    return 0


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.warning(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    exit_code = 0
    try:
        exit_code = loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutdown initiated")
        stop_event.set()

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        # --------------------------------------------------
        # FINAL LOOP CLEANUP
        # --------------------------------------------------
        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
