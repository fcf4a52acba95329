"""
Bulk Operation Orchestrator — batch verification transitions with progress tracking.

Job state machine:
    queued  --start-->   running  --pause-->  paused  --resume--> running
    running --all items processed--> completed
    queued | running | paused --cancel--> cancelled
    running --orchestration fault--> failed

Execution model:
  - one owner task per job; it is the only code that writes ``item_results``
    and ``progress``
  - a fixed number of worker tasks pull target ids from a work queue and send
    outcomes back to the owner over a results queue
  - pause and cancel are cooperative: workers check them before taking the
    next item, in-flight remote calls always finish and are recorded
  - per-item failures (remote refusal, transport error, timeout) are recorded
    and never fail the job; a job that processed every item is completed no
    matter how many items failed
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from bulk.export import build_artifact
from bulk.models import (
    BulkOperationJob,
    BulkOperationRequest,
    ItemResult,
    JobStatus,
    OperationType,
)
from bulk.validation import ValidationResult, validate_request
from core.config import get_settings
from core.errors import (
    BulkValidationError,
    JobNotFoundError,
    JobStateError,
    OrchestrationFault,
    PerItemTransitionError,
)
from integrations.base import BulkTransitionBackend

logger = structlog.get_logger()

ItemListener = Callable[[BulkOperationJob, str, ItemResult], Any]

TIMEOUT_REASON = "timeout"

_WORKER_DONE = object()


@dataclass
class _WorkerFault:
    error: BaseException


@dataclass
class _JobRuntime:
    job: BulkOperationJob
    resume: asyncio.Event = field(default_factory=asyncio.Event)
    cancel_requested: bool = False
    owner: asyncio.Task | None = None

    def __post_init__(self):
        self.resume.set()


class BulkOperationOrchestrator:
    """Owns bulk jobs from confirmation until they are purged after the retention window."""

    def __init__(
        self,
        backend: BulkTransitionBackend,
        *,
        worker_count: int | None = None,
        item_timeout_seconds: float | None = None,
        retention_seconds: float | None = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.worker_count = worker_count if worker_count is not None else settings.bulk_worker_count
        self.item_timeout_seconds = (
            item_timeout_seconds if item_timeout_seconds is not None else settings.bulk_item_timeout_seconds
        )
        self.retention_seconds = retention_seconds if retention_seconds is not None else settings.bulk_job_retention_seconds
        if self.worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._jobs: dict[str, _JobRuntime] = {}
        self._listeners: list[ItemListener] = []

    # ── Listeners ─────────────────────────────────────────────────────────

    def subscribe(self, listener: ItemListener) -> None:
        """Call ``listener(job, entity_id, result)`` after each item result is recorded."""
        self._listeners.append(listener)

    # ── Two-phase confirmation ────────────────────────────────────────────

    def validate(self, request: BulkOperationRequest) -> ValidationResult:
        return validate_request(request)

    def confirm(self, request: BulkOperationRequest) -> BulkOperationJob:
        """Validate and queue a job. Raises BulkValidationError without creating anything."""
        result = validate_request(request)
        if not result.is_valid:
            logger.info(
                "bulk.job.rejected",
                operation=str(request.operation_type),
                errors=list(result.errors),
            )
            raise BulkValidationError(result)

        self.purge_expired()
        job = BulkOperationJob(
            operation_type=result.operation_type,
            target_ids=result.target_ids,
            parameters=result.parameters,
            requested_by=request.requested_by,
        )
        self._jobs[job.id] = _JobRuntime(job)
        logger.info(
            "bulk.job.confirmed",
            job_id=job.id,
            operation=job.operation_type.value,
            targets=len(job.target_ids),
            requested_by=job.requested_by,
        )
        return job

    # ── Lookup ────────────────────────────────────────────────────────────

    def _runtime(self, job_id: str) -> _JobRuntime:
        runtime = self._jobs.get(job_id)
        if runtime is None:
            raise JobNotFoundError(job_id)
        return runtime

    def get(self, job_id: str) -> BulkOperationJob:
        return self._runtime(job_id).job

    def list_jobs(self) -> list[BulkOperationJob]:
        return sorted((rt.job for rt in self._jobs.values()), key=lambda job: job.created_at, reverse=True)

    def purge_expired(self, now: datetime | None = None) -> int:
        """Drop terminal jobs whose retention window has passed. Returns how many were dropped."""
        now = now or datetime.now(timezone.utc)
        cutoff = timedelta(seconds=self.retention_seconds)
        expired = [
            job_id
            for job_id, rt in self._jobs.items()
            if rt.job.is_terminal and rt.job.finished_at is not None and now - rt.job.finished_at >= cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("bulk.jobs.purged", count=len(expired))
        return len(expired)

    # ── Control commands ──────────────────────────────────────────────────

    async def start(self, job_id: str) -> BulkOperationJob:
        """Begin processing a queued job. Any other status is returned unchanged."""
        runtime = self._runtime(job_id)
        job = runtime.job
        if job.status != JobStatus.QUEUED:
            return job
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        runtime.owner = asyncio.create_task(self._run(runtime), name=f"bulk-job-{job.id}")
        return job

    async def pause(self, job_id: str) -> BulkOperationJob:
        runtime = self._runtime(job_id)
        job = runtime.job
        if job.status == JobStatus.PAUSED:
            return job
        if job.status != JobStatus.RUNNING:
            raise JobStateError(job.id, job.status.value, "pause")
        runtime.resume.clear()
        job.status = JobStatus.PAUSED
        logger.info("bulk.job.paused", job_id=job.id, processed=job.progress.processed)
        return job

    async def resume(self, job_id: str) -> BulkOperationJob:
        runtime = self._runtime(job_id)
        job = runtime.job
        if job.status == JobStatus.RUNNING:
            return job
        if job.status != JobStatus.PAUSED:
            raise JobStateError(job.id, job.status.value, "resume")
        job.status = JobStatus.RUNNING
        runtime.resume.set()
        logger.info("bulk.job.resumed", job_id=job.id, processed=job.progress.processed)
        return job

    async def cancel(self, job_id: str) -> BulkOperationJob:
        """
        Stop scheduling new items and wait for in-flight ones to be recorded.

        Once this returns the job is terminal and its progress no longer moves.
        """
        runtime = self._runtime(job_id)
        job = runtime.job
        if job.is_terminal:
            raise JobStateError(job.id, job.status.value, "cancel")
        if job.status == JobStatus.QUEUED:
            job.status = JobStatus.CANCELLED
            job.finished_at = datetime.now(timezone.utc)
            logger.info("bulk.job.cancelled", job_id=job.id, processed=0)
            return job

        runtime.cancel_requested = True
        # Paused workers must wake up to observe the cancellation.
        runtime.resume.set()
        if runtime.owner is not None:
            await asyncio.shield(runtime.owner)
        return job

    async def wait(self, job_id: str) -> BulkOperationJob:
        runtime = self._runtime(job_id)
        if runtime.owner is not None:
            await asyncio.shield(runtime.owner)
        return runtime.job

    async def shutdown(self) -> None:
        """Cancel every active job and wait for in-flight items to settle."""
        active = [rt for rt in self._jobs.values() if rt.job.status in (JobStatus.RUNNING, JobStatus.PAUSED)]
        for rt in active:
            rt.cancel_requested = True
            rt.resume.set()
        owners = [rt.owner for rt in active if rt.owner is not None]
        if owners:
            await asyncio.gather(*owners, return_exceptions=True)

    # ── Owner task ────────────────────────────────────────────────────────

    async def _run(self, runtime: _JobRuntime) -> None:
        job = runtime.job
        log = logger.bind(job_id=job.id, operation=job.operation_type.value)
        log.info("bulk.job.started", total=job.progress.total, workers=self.worker_count)
        try:
            if job.operation_type == OperationType.EXPORT:
                await self._run_export(runtime)
            else:
                await self._run_transitions(runtime)
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.fault = str(exc) or exc.__class__.__name__
            job.finished_at = datetime.now(timezone.utc)
            log.error(
                "bulk.job.failed",
                fault=job.fault,
                fault_type=exc.__class__.__name__,
                **job.progress.to_payload(),
            )
            return

        progress = job.progress
        if progress.processed == progress.total:
            job.status = JobStatus.COMPLETED
        else:
            job.status = JobStatus.CANCELLED
        job.finished_at = datetime.now(timezone.utc)
        log.info(f"bulk.job.{job.status.value}", **progress.to_payload())

    async def _run_transitions(self, runtime: _JobRuntime) -> None:
        job = runtime.job
        work: asyncio.Queue[str] = asyncio.Queue()
        for entity_id in job.target_ids:
            work.put_nowait(entity_id)
        results: asyncio.Queue[Any] = asyncio.Queue()

        worker_total = min(self.worker_count, len(job.target_ids))
        workers = [
            asyncio.create_task(self._worker(runtime, work, results), name=f"bulk-job-{job.id}-worker-{n}")
            for n in range(worker_total)
        ]

        fault: BaseException | None = None
        active = worker_total
        while active:
            message = await results.get()
            if message is _WORKER_DONE:
                active -= 1
            elif isinstance(message, _WorkerFault):
                if fault is None:
                    fault = message.error
                # Stop the remaining workers; what they already started still gets recorded.
                runtime.cancel_requested = True
                runtime.resume.set()
            else:
                entity_id, outcome = message
                await self._record(runtime, entity_id, outcome)

        await asyncio.gather(*workers, return_exceptions=True)
        if fault is not None:
            if isinstance(fault, OrchestrationFault):
                raise fault
            raise OrchestrationFault(f"worker crashed: {fault!r}") from fault

    async def _worker(self, runtime: _JobRuntime, work: asyncio.Queue, results: asyncio.Queue) -> None:
        try:
            while True:
                # Nothing left to take: a paused job still finishes once in-flight items land.
                if work.empty():
                    return
                await runtime.resume.wait()
                if runtime.cancel_requested:
                    return
                try:
                    entity_id = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcome = await self._transition_one(runtime.job, entity_id)
                results.put_nowait((entity_id, outcome))
        except Exception as exc:
            results.put_nowait(_WorkerFault(exc))
        finally:
            results.put_nowait(_WORKER_DONE)

    async def _transition_one(self, job: BulkOperationJob, entity_id: str) -> ItemResult:
        params = job.parameters
        try:
            result = await asyncio.wait_for(
                self.backend.transition(
                    job.operation_type,
                    [entity_id],
                    reason=params.reason,
                    message=params.message,
                    notify=params.notify,
                ),
                timeout=self.item_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return ItemResult.error(TIMEOUT_REASON)
        except PerItemTransitionError as exc:
            return ItemResult.error(exc.reason)

        error = result.error_for(entity_id)
        if error is not None:
            return ItemResult.error(error.reason)
        return ItemResult.ok()

    async def _run_export(self, runtime: _JobRuntime) -> None:
        job = runtime.job
        params = job.parameters
        try:
            sources = await asyncio.wait_for(
                self.backend.fetch_export_rows(list(job.target_ids)),
                timeout=self.item_timeout_seconds,
            )
        except asyncio.TimeoutError:
            outcome = ItemResult.error(TIMEOUT_REASON)
        except PerItemTransitionError as exc:
            outcome = ItemResult.error(exc.reason)
        else:
            job.artifact = build_artifact(sources, params.export_format, params.entity_label)
            outcome = ItemResult.ok()
        await self._record(runtime, job.id, outcome)

    async def _record(self, runtime: _JobRuntime, entity_id: str, outcome: ItemResult) -> None:
        job = runtime.job
        if entity_id in job.item_results:
            return
        job.item_results[entity_id] = outcome
        job.progress = job.progress.record(outcome.success)
        if outcome.success:
            logger.debug("bulk.item.succeeded", job_id=job.id, entity_id=entity_id)
        else:
            logger.warning("bulk.item.failed", job_id=job.id, entity_id=entity_id, reason=outcome.reason)

        for listener in self._listeners:
            try:
                maybe_awaitable = listener(job, entity_id, outcome)
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable
            except Exception:
                logger.exception("bulk.listener.failed", job_id=job.id, entity_id=entity_id)
