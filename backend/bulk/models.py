"""
Bulk operation jobs and their progress.

A job is owned by exactly one orchestrator. ``progress`` is an immutable value
replaced as a whole by the job's owner task, so readers never see a
half-updated counter set.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class OperationType(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ACTIVATE = "activate"
    SUSPEND = "suspend"
    MESSAGE = "message"
    EXPORT = "export"


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED})

# Operations that must carry a non-blank reason.
REASON_REQUIRED = frozenset({OperationType.REJECT, OperationType.SUSPEND})

# Operations whose success changes an entity's verification or account state.
STATE_CHANGING_OPERATIONS = frozenset(
    {OperationType.APPROVE, OperationType.REJECT, OperationType.ACTIVATE, OperationType.SUSPEND}
)

OPERATION_LABELS = {
    OperationType.APPROVE: "Approve Verification",
    OperationType.REJECT: "Reject Verification",
    OperationType.ACTIVATE: "Activate Accounts",
    OperationType.SUSPEND: "Suspend Accounts",
    OperationType.MESSAGE: "Send Message",
    OperationType.EXPORT: "Export Data",
}


@dataclass(frozen=True)
class BulkParameters:
    reason: str | None = None
    message: str | None = None
    export_format: ExportFormat = ExportFormat.CSV
    notify: bool = True
    entity_label: str = "entities"


@dataclass(frozen=True)
class BulkOperationRequest:
    """What an administrator asked for, before validation."""

    operation_type: OperationType | str
    target_ids: tuple[str, ...] | list[str]
    reason: str | None = None
    message: str | None = None
    export_format: ExportFormat | str | None = None
    notify: bool = True
    entity_label: str = "entities"
    requested_by: str | None = None


@dataclass(frozen=True)
class JobProgress:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    total: int = 0

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)

    def record(self, success: bool) -> "JobProgress":
        if success:
            return replace(self, processed=self.processed + 1, succeeded=self.succeeded + 1)
        return replace(self, processed=self.processed + 1, failed=self.failed + 1)

    def to_payload(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total": self.total,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class ItemResult:
    success: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "ItemResult":
        return cls(success=True)

    @classmethod
    def error(cls, reason: str) -> "ItemResult":
        return cls(success=False, reason=reason)

    def to_payload(self) -> dict[str, Any]:
        if self.success:
            return {"status": "success"}
        return {"status": "error", "reason": self.reason}


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    content_type: str
    content: str
    row_count: int


@dataclass
class BulkOperationJob:
    operation_type: OperationType
    target_ids: tuple[str, ...]
    parameters: BulkParameters = field(default_factory=BulkParameters)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.QUEUED
    progress: JobProgress = field(default_factory=JobProgress)
    item_results: dict[str, ItemResult] = field(default_factory=dict)
    requested_by: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    fault: str | None = None
    artifact: ExportArtifact | None = None

    def __post_init__(self):
        if self.progress.total == 0:
            self.progress = JobProgress(total=self.total_items)

    @property
    def total_items(self) -> int:
        # Export produces a single artifact regardless of how many rows it holds.
        if self.operation_type == OperationType.EXPORT:
            return 1
        return len(self.target_ids)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        return OPERATION_LABELS[self.operation_type]

    def confirms_state_change(self, result: ItemResult) -> bool:
        """True when ``result`` is a confirmed remote state change for its entity."""
        return result.success and self.operation_type in STATE_CHANGING_OPERATIONS

    def to_payload(self, include_items: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "operation_type": self.operation_type.value,
            "label": self.label,
            "status": self.status.value,
            "progress": self.progress.to_payload(),
            "target_count": len(self.target_ids),
            "requested_by": self.requested_by,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "fault": self.fault,
            "has_artifact": self.artifact is not None,
        }
        if include_items:
            payload["item_results"] = {
                entity_id: result.to_payload() for entity_id, result in dict(self.item_results).items()
            }
        return payload
