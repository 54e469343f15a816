import asyncio
from typing import Dict, List

from core.errors import (
    AlreadyTracked,
    NotFound,
    PersistenceFailed,
    SubscriptionRejected,
    UnsupportedOperation,
)
from core.models import NotificationSubscription, TrackedEntity
from shared.logging.logger import get_logger
from shared.storage.entity_store import EntityStore

log = get_logger("core.registry")


class EntityRegistry:
    """
    In-memory authority for tracked entities and their subscriptions.

    - Every mutation holds the lock around the map update and the store write
    - Store writes run in a worker thread so the event loop keeps serving
    - snapshot() holds the lock only long enough to copy, never across I/O
    - Entities handed out are copies; callers commit changes back explicitly
    - A failed store write is logged; the in-memory change stands
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._entities: Dict[str, TrackedEntity] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # LOAD / PERSIST
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Replace the in-memory map with the store's contents.
        """
        entities = await asyncio.to_thread(self._store.load_all)
        async with self._lock:
            self._entities = {entity.id: entity for entity in entities}
        log.info(f"Loaded {len(entities)} tracked entit{'y' if len(entities) == 1 else 'ies'}")
        return len(entities)

    async def _persist(self, entity: TrackedEntity) -> bool:
        try:
            await asyncio.to_thread(self._store.upsert, entity.copy())
            return True
        except PersistenceFailed as e:
            log.error(f"[{entity.name}] {e}")
            return False

    # ------------------------------------------------------------------
    # READS
    # ------------------------------------------------------------------

    async def snapshot(self) -> List[TrackedEntity]:
        async with self._lock:
            return [entity.copy() for entity in self._entities.values()]

    async def find_by_id(self, entity_id: str) -> TrackedEntity:
        async with self._lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                raise NotFound(f"no tracked entity with id: {entity_id}")
            return entity.copy()

    async def find_by_name(self, name: str) -> TrackedEntity:
        wanted = name.strip().lower()
        async with self._lock:
            for entity in self._entities.values():
                if entity.name.lower() == wanted:
                    return entity.copy()
        raise NotFound(f"no tracked entity with name: {name}")

    async def count(self) -> int:
        async with self._lock:
            return len(self._entities)

    # ------------------------------------------------------------------
    # MUTATIONS
    # ------------------------------------------------------------------

    async def add(self, entity: TrackedEntity) -> bool:
        """
        Register a new entity. Returns whether the store write succeeded.
        """
        async with self._lock:
            if entity.id in self._entities:
                raise AlreadyTracked(f"{entity.name} ({entity.id}) is already tracked")
            self._entities[entity.id] = entity.copy()
            persisted = await self._persist(entity)

        log.info(f"[{entity.name}] Entity registered (id={entity.id})")
        return persisted

    async def add_subscription(
        self,
        entity_id: str,
        subscription: NotificationSubscription,
        *,
        requesting_guild_id: str,
    ) -> bool:
        """
        Subscribe a destination to an entity.

        Rejects a destination already subscribed to this entity and a
        destination outside the requesting guild.
        """
        if subscription.guild_id != requesting_guild_id:
            raise SubscriptionRejected(
                f"channel {subscription.channel_id} does not belong to this server",
                reason="foreign_destination",
            )

        async with self._lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                raise NotFound(f"no tracked entity with id: {entity_id}")
            if entity.has_subscription(subscription.channel_id):
                raise SubscriptionRejected(
                    f"channel {subscription.channel_id} is already subscribed to {entity.name}",
                    reason="duplicate",
                )

            entity.subscriptions.append(
                NotificationSubscription(
                    channel_id=subscription.channel_id,
                    guild_id=subscription.guild_id,
                )
            )
            persisted = await self._persist(entity)

        log.info(
            f"[{entity.name}] Subscription added "
            f"(guild={subscription.guild_id}, channel={subscription.channel_id})"
        )
        return persisted

    async def remove_subscription(self, entity_id: str, channel_id: str) -> bool:
        raise UnsupportedOperation("removing subscriptions is not supported yet")

    async def update_after_cycle(self, updated: TrackedEntity) -> bool:
        """
        Commit a worker's copy of an entity back into the registry.
        Returns whether the store write succeeded.

        Timestamps and profile fields are taken from the worker copy.
        Message handles are applied to subscriptions that still exist;
        subscriptions added while the worker ran are left as they are.
        """
        async with self._lock:
            current = self._entities.get(updated.id)
            if current is None:
                log.warning(f"[{updated.name}] Entity vanished before commit; dropping update")
                return False

            current.display_name = updated.display_name
            current.profile_image_url = updated.profile_image_url
            current.stream_start_time = updated.stream_start_time
            current.stream_end_time = updated.stream_end_time

            for sub in updated.subscriptions:
                target = current.find_subscription(sub.channel_id)
                if target is not None:
                    target.message_id = sub.message_id

            return await self._persist(current)
