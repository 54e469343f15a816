import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.live_job import EvaluationOutcome, LiveStatusJob
from core.models import TrackedEntity
from core.registry import EntityRegistry
from shared.logging.logger import get_logger

log = get_logger("core.scheduler")


class PollScheduler:
    """
    Fixed-interval driver for the live-status engine.

    Each tick:
    - snapshot the registry
    - query the status source for the whole snapshot
    - evaluate every entity with bounded concurrency
    - wait for the whole batch before the next tick

    Never more than one batch in flight. A failing entity never aborts
    its siblings.
    """

    def __init__(
        self,
        *,
        registry: EntityRegistry,
        job: LiveStatusJob,
        interval: float = 60.0,
        max_concurrency: int = 10,
    ):
        self._registry = registry
        self._job = job
        self._interval = interval
        self._concurrency = max(1, max_concurrency)

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self._tick_count = 0
        self._last_tick_at: Optional[datetime] = None
        self._last_tick_duration: Optional[float] = None
        self._last_tick_summary: Dict[str, int] = {}

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self):
        if self._task:
            return
        log.info(
            f"Poll scheduler starting (interval={self._interval}s, concurrency={self._concurrency})"
        )
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self, timeout: float = 30.0):
        """
        Stop ticking. The in-flight batch gets `timeout` seconds to finish
        and is abandoned after that.
        """
        self._stop_event.set()
        if not self._task:
            return

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("In-flight batch did not finish in time; abandoning it")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        except Exception as e:
            log.warning(f"Poll scheduler exited with error: {e}")
        finally:
            self._task = None

        log.info("Poll scheduler stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------

    async def _run(self):
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                try:
                    await self.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception("Tick failed; continuing on the next interval")
                elapsed = time.monotonic() - started

                delay = max(0.0, self._interval - elapsed)
                if elapsed > self._interval:
                    log.warning(
                        f"Tick took {elapsed:.1f}s, longer than the {self._interval}s interval"
                    )

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            log.debug("Poll scheduler cancelled")
            raise

    async def tick(self) -> List[EvaluationOutcome]:
        started = time.monotonic()
        entities = await self._registry.snapshot()
        self._tick_count += 1
        self._last_tick_at = datetime.now(timezone.utc)

        if not entities:
            log.debug("Tick: no tracked entities")
            self._last_tick_summary = {}
            return []

        lookup = await self._job.lookup(entities)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(entity: TrackedEntity) -> EvaluationOutcome:
            async with semaphore:
                try:
                    return await self._job.evaluate(entity, lookup)
                except Exception:
                    log.exception(f"[{entity.name}] evaluation failed")
                    return EvaluationOutcome(entity_id=entity.id, skipped=True)

        results = await asyncio.gather(
            *(_bounded(entity) for entity in entities),
            return_exceptions=True,
        )

        outcomes = [r for r in results if isinstance(r, EvaluationOutcome)]
        self._last_tick_duration = time.monotonic() - started
        self._last_tick_summary = self._summarize(outcomes)

        log.debug(
            f"Tick {self._tick_count}: {len(entities)} entities in "
            f"{self._last_tick_duration:.2f}s {self._last_tick_summary}"
        )
        return outcomes

    @staticmethod
    def _summarize(outcomes: List[EvaluationOutcome]) -> Dict[str, int]:
        summary: Dict[str, int] = {}
        for outcome in outcomes:
            key = "skipped" if outcome.skipped else (
                outcome.transition.value if outcome.transition else "unknown"
            )
            summary[key] = summary.get(key, 0) + 1
        return summary

    # ------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------

    def snapshot(self) -> Dict[str, object]:
        return {
            "running": self.running,
            "interval": self._interval,
            "concurrency": self._concurrency,
            "tick_count": self._tick_count,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "last_tick_duration": self._last_tick_duration,
            "last_tick": dict(self._last_tick_summary),
        }
