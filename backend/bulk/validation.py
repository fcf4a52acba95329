"""
Phase one of validate → confirm for bulk operations.

Pure: no job is created here. ``BulkOperationOrchestrator.confirm`` runs the
same check and refuses to queue anything that fails it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bulk.models import (
    REASON_REQUIRED,
    BulkOperationRequest,
    BulkParameters,
    ExportFormat,
    OperationType,
)


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = ()
    operation_type: OperationType | None = None
    target_ids: tuple[str, ...] = ()
    parameters: BulkParameters = field(default_factory=BulkParameters)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_payload(self) -> dict:
        return {
            "valid": self.is_valid,
            "errors": list(self.errors),
            "operation_type": self.operation_type.value if self.operation_type else None,
            "target_count": len(self.target_ids),
        }


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def validate_request(request: BulkOperationRequest) -> ValidationResult:
    """Collect every problem with ``request``; an empty error list means it may be confirmed."""
    errors: list[str] = []

    try:
        operation = OperationType(request.operation_type)
    except ValueError:
        return ValidationResult(errors=(f"Unknown operation type: {request.operation_type}",))

    target_ids: list[str] = []
    seen: set[str] = set()
    for raw in request.target_ids or ():
        entity_id = str(raw).strip() if raw is not None else ""
        if not entity_id:
            errors.append("Target ids must not be blank")
            continue
        if entity_id in seen:
            continue
        seen.add(entity_id)
        target_ids.append(entity_id)
    if not target_ids and not errors:
        errors.append("Select at least one target")

    reason = _clean(request.reason)
    message = _clean(request.message)
    if operation in REASON_REQUIRED and reason is None:
        errors.append(f"A reason is required to {operation.value}")
    if operation == OperationType.MESSAGE and message is None:
        errors.append("A message is required to send a bulk message")

    export_format = ExportFormat.CSV
    if operation == OperationType.EXPORT and request.export_format is not None:
        try:
            export_format = ExportFormat(request.export_format)
        except ValueError:
            errors.append(f"Unsupported export format: {request.export_format}")

    return ValidationResult(
        errors=tuple(dict.fromkeys(errors)),
        operation_type=operation,
        target_ids=tuple(target_ids),
        parameters=BulkParameters(
            reason=reason,
            message=message,
            export_format=export_format,
            notify=request.notify,
            entity_label=_clean(request.entity_label) or "entities",
        ),
    )
