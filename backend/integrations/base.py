"""
Verification Backend Interfaces — Abstract Base Classes

The engine never talks to persistence directly. Everything it knows about a
business entity comes through these two seams:

  - VerificationStatusProvider: per-user status / capability snapshot
  - BulkTransitionBackend: administrative state transitions + export rows

The HTTP client in ``integrations.verification_api`` implements both; tests
plug in in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from bulk.models import OperationType
from verification.status import BusinessStatus

logger = structlog.get_logger()


# ── Transition result container ───────────────────────────────────────────


@dataclass(frozen=True)
class TransitionError:
    """One entity the remote side refused to transition."""

    entity_id: str
    reason: str


@dataclass
class TransitionResult:
    """Standardized return from every bulk transition call."""

    processed: int = 0
    errors: list[TransitionError] = field(default_factory=list)
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def error_for(self, entity_id: str) -> TransitionError | None:
        for error in self.errors:
            if error.entity_id == entity_id:
                return error
        return None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], entity_ids: list[str]) -> "TransitionResult":
        """
        Parse ``{processed, errors: [{id, reason}]}``.

        Older endpoints answer with a bare error count; a non-zero count there
        fails every requested id since the response cannot say which ones.
        """
        raw_errors = payload.get("errors") or []
        errors: list[TransitionError] = []
        if isinstance(raw_errors, int):
            if raw_errors > 0:
                errors = [TransitionError(entity_id, "rejected by verification service") for entity_id in entity_ids]
        elif isinstance(raw_errors, list):
            for item in raw_errors:
                if not isinstance(item, dict):
                    continue
                entity_id = item.get("id", item.get("entityId"))
                if entity_id is None:
                    continue
                reason = item.get("reason") or item.get("message") or "transition failed"
                errors.append(TransitionError(str(entity_id), str(reason)))

        processed = payload.get("processed")
        if not isinstance(processed, int) or isinstance(processed, bool):
            processed = len(entity_ids)
        # A short count with no named failures cannot say which ids were skipped.
        if not errors and processed < len(entity_ids):
            errors = [TransitionError(entity_id, "not processed") for entity_id in entity_ids]
        return cls(processed=processed, errors=errors)


# ── Abstract interfaces ───────────────────────────────────────────────────


class VerificationStatusProvider(ABC):
    """Source of per-user business status. Raises TransientFetchError when unavailable."""

    @abstractmethod
    async def fetch(self, user_id: str) -> BusinessStatus:
        """Return the current status snapshot for ``user_id``."""
        ...


class BulkTransitionBackend(ABC):
    """
    Remote side of bulk operations.

    ``transition`` raises PerItemTransitionError for failures confined to the
    requested ids and OrchestrationFault when the channel itself is unusable.
    """

    @abstractmethod
    async def transition(
        self,
        operation: OperationType,
        entity_ids: list[str],
        *,
        reason: str | None = None,
        message: str | None = None,
        notify: bool = True,
    ) -> TransitionResult:
        """Apply one operation to ``entity_ids``."""
        ...

    @abstractmethod
    async def fetch_export_rows(self, entity_ids: list[str]) -> list[dict[str, Any]]:
        """Return one source row per entity for export."""
        ...
