from __future__ import annotations

import time
from enum import Enum
from threading import Lock
from typing import Callable, Dict


class CommandKind(str, Enum):
    TWITCH = "twitch"
    UPTIME = "uptime"
    STATS = "stats"


class CooldownGate:
    """
    Per-(command, channel) throttle for interactive commands.

    One member's use arms the cooldown for everyone in that channel.
    Admins and the owner always bypass it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = Lock()
        self._tables: Dict[CommandKind, Dict[str, float]] = {kind: {} for kind in CommandKind}

    def is_on_cooldown(
        self,
        command: CommandKind,
        channel_id: str,
        actor_id: str,
        cooldown_seconds: float,
        actor_is_admin_or_owner: bool,
    ) -> bool:
        """
        Return True when the command may not run yet.

        A False result arms the next cooldown window.
        """
        if actor_is_admin_or_owner:
            return False

        now = self._clock()
        with self._lock:
            table = self._tables[command]
            next_eligible = table.get(channel_id)
            if next_eligible is not None and now < next_eligible:
                return True
            table[channel_id] = now + max(0.0, float(cooldown_seconds))
            return False

    def reset(self, command: CommandKind, channel_id: str) -> None:
        with self._lock:
            self._tables[command].pop(channel_id, None)
