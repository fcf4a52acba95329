"""
Bulk Operations Router — administrator control surface for bulk jobs.

Workflow:
  1. POST /validate   → check a pending request without creating anything
  2. POST /           → confirm; the job is created in ``queued``
  3. POST /{id}/start → begin processing (idempotent)
  4. pause / resume / cancel while it runs, GET /{id} for progress
  5. GET /{id}/artifact for export jobs

Errors: unknown job → 404, invalid control command → 409, invalid request → 422.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from api.deps import get_orchestrator, require_admin
from bulk.models import BulkOperationRequest
from bulk.orchestrator import BulkOperationOrchestrator
from core.errors import BulkValidationError, JobNotFoundError, JobStateError
from verification.capabilities import UserContext

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/bulk-operations", tags=["bulk-operations"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class BulkOperationCreate(BaseModel):
    operation_type: str = Field(..., examples=["approve", "reject", "activate", "suspend", "message", "export"])
    target_ids: list[str] = Field(default_factory=list)
    reason: str | None = None
    message: str | None = None
    export_format: str | None = None
    notify: bool = True
    entity_label: str = "entities"
    auto_start: bool = False

    def to_request(self, requested_by: str) -> BulkOperationRequest:
        return BulkOperationRequest(
            operation_type=self.operation_type,
            target_ids=tuple(self.target_ids),
            reason=self.reason,
            message=self.message,
            export_format=self.export_format,
            notify=self.notify,
            entity_label=self.entity_label,
            requested_by=requested_by,
        )


# ─── Helpers ────────────────────────────────────────────────────────────────


def _not_found(exc: JobNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _conflict(exc: JobStateError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/validate")
async def validate_bulk_operation(
    body: BulkOperationCreate,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.validate(body.to_request(admin.user_id)).to_payload()


@router.post("/", status_code=201)
async def create_bulk_operation(
    body: BulkOperationCreate,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        job = orchestrator.confirm(body.to_request(admin.user_id))
    except BulkValidationError as exc:
        raise HTTPException(status_code=422, detail={"errors": list(exc.result.errors)}) from exc
    if body.auto_start:
        job = await orchestrator.start(job.id)
    return job.to_payload()


@router.get("/")
async def list_bulk_operations(
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    return [job.to_payload(include_items=False) for job in orchestrator.list_jobs()]


@router.get("/{job_id}")
async def get_bulk_operation(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        return orchestrator.get(job_id).to_payload()
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc


@router.post("/{job_id}/start")
async def start_bulk_operation(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        job = await orchestrator.start(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return job.to_payload()


@router.post("/{job_id}/pause")
async def pause_bulk_operation(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        job = await orchestrator.pause(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    except JobStateError as exc:
        raise _conflict(exc) from exc
    return job.to_payload()


@router.post("/{job_id}/resume")
async def resume_bulk_operation(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        job = await orchestrator.resume(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    except JobStateError as exc:
        raise _conflict(exc) from exc
    return job.to_payload()


@router.post("/{job_id}/cancel")
async def cancel_bulk_operation(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        job = await orchestrator.cancel(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    except JobStateError as exc:
        raise _conflict(exc) from exc
    logger.info("bulk.job.cancel_requested", job_id=job_id, requested_by=admin.user_id)
    return job.to_payload()


@router.get("/{job_id}/artifact")
async def download_bulk_artifact(
    job_id: str,
    admin: UserContext = Depends(require_admin),
    orchestrator: BulkOperationOrchestrator = Depends(get_orchestrator),
):
    try:
        job = orchestrator.get(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    if job.artifact is None:
        raise HTTPException(status_code=404, detail="No export artifact for this job")
    return Response(
        content=job.artifact.content,
        media_type=job.artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{job.artifact.filename}"'},
    )
