"""
Short-lived cache in front of the status provider.

Entries for an entity are dropped when the bulk orchestrator records a
confirmed transition for it, never earlier: capability checks must not see a
bulk job's in-progress state as platform state.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from bulk.models import BulkOperationJob, ItemResult
from integrations.base import VerificationStatusProvider
from verification.status import BusinessStatus

logger = structlog.get_logger()


class StatusCache(VerificationStatusProvider):
    def __init__(
        self,
        provider: VerificationStatusProvider,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[float, BusinessStatus]] = {}

    async def fetch(self, user_id: str) -> BusinessStatus:
        now = self.clock()
        cached = self._entries.get(user_id)
        if cached is not None and cached[0] > now:
            return cached[1]
        # Failures propagate and are not cached.
        status = await self.provider.fetch(user_id)
        if self.ttl_seconds > 0:
            self._entries[user_id] = (now + self.ttl_seconds, status)
        return status

    def invalidate_user(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def invalidate_entity(self, entity_id: str) -> int:
        stale = [
            user_id
            for user_id, (_, status) in self._entries.items()
            if (status.record is not None and status.record.entity_id == entity_id)
            or (status.user is not None and status.user.linked_entity_id == entity_id)
        ]
        for user_id in stale:
            del self._entries[user_id]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def on_item_recorded(self, job: BulkOperationJob, entity_id: str, result: ItemResult) -> None:
        """Orchestrator listener: forget an entity once its transition is confirmed."""
        if not job.confirms_state_change(result):
            return
        dropped = self.invalidate_entity(entity_id)
        if dropped:
            logger.debug("verification.cache.invalidated", entity_id=entity_id, entries=dropped, job_id=job.id)
