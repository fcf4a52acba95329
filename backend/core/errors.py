"""
Error taxonomy for verification and bulk operations.

Capability-layer errors are terminal per evaluation. Bulk per-item errors are
accumulated on the job; only orchestration faults fail a job.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bulk.validation import ValidationResult


class VerificationEngineError(Exception):
    """Base class for every error raised by this package."""


class TransientFetchError(VerificationEngineError):
    """The verification status provider was unreachable, slow, or returned garbage."""


class InvalidTransitionError(VerificationEngineError):
    """A verification record was asked to move along an edge that does not exist."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition verification from {from_status} to {to_status}")


class BulkValidationError(VerificationEngineError):
    """A bulk confirmation was rejected before any job was created."""

    def __init__(self, result: "ValidationResult"):
        self.result = result
        super().__init__("; ".join(result.errors) or "invalid bulk operation request")


class PerItemTransitionError(VerificationEngineError):
    """One entity's remote transition failed. Recorded on the job, never raised out of it."""

    def __init__(self, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_id}: {reason}")


class OrchestrationFault(VerificationEngineError):
    """The batch execution channel itself broke; the job cannot know the remaining outcomes."""


class JobNotFoundError(VerificationEngineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Bulk operation job not found: {job_id}")


class JobStateError(VerificationEngineError):
    """A control command is not valid for the job's current status."""

    def __init__(self, job_id: str, status: str, command: str):
        self.job_id = job_id
        self.status = status
        self.command = command
        super().__init__(f"Cannot {command} job {job_id} while {status}")
