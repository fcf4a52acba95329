"""
Verification Router — business status and capability checks for the caller.

A provider outage is reported as 503 on the status endpoint; the gate endpoint
always answers with an explicit decision, including ``error``.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_current_user, get_status_provider
from core.errors import TransientFetchError
from integrations.base import VerificationStatusProvider
from verification.capabilities import UserContext
from verification.gate import CapabilityGate
from verification.records import legacy_is_verified
from verification.status import (
    effective_capabilities,
    needs_verification,
    status_display,
    verification_progress,
)
from verification.urgency import record_urgency

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/verification", tags=["verification"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class GateRequest(BaseModel):
    capability: str
    has_fallback: bool = False
    custom_message: str | None = None


class GateResponse(BaseModel):
    decision: str
    allowed: bool
    message: str | None
    next_steps: list[str]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/status")
async def get_verification_status(
    user: UserContext = Depends(get_current_user),
    provider: VerificationStatusProvider = Depends(get_status_provider),
) -> dict[str, Any]:
    """Current business verification status, effective capabilities, and guidance."""
    try:
        status = await provider.fetch(user.user_id)
    except TransientFetchError as exc:
        logger.warning("verification.status.unavailable", user_id=user.user_id)
        raise HTTPException(status_code=503, detail="Verification status is temporarily unavailable") from exc

    record = status.record
    return {
        "user_id": user.user_id,
        "role": user.role.value,
        "record": record.to_payload() if record else None,
        "is_verified": legacy_is_verified(record),
        "capabilities": effective_capabilities(status, user.role).to_payload(),
        "restrictions": {
            "has_restrictions": status.restrictions.has_restrictions,
            "reason": status.restrictions.reason,
        },
        "next_steps": list(status.next_steps),
        "needs_verification": needs_verification(status),
        "progress": verification_progress(status),
        "urgency": record_urgency(record),
        "display": status_display(status),
    }


@router.post("/gate", response_model=GateResponse)
async def evaluate_gate(
    body: GateRequest,
    user: UserContext = Depends(get_current_user),
    provider: VerificationStatusProvider = Depends(get_status_provider),
):
    """Evaluate one capability for the caller."""
    gate = await CapabilityGate.load(provider, user.user_id, role=user.role)
    decision = gate.evaluate(
        body.capability,
        fallback=True if body.has_fallback else None,
        custom_message=body.custom_message,
    )
    return decision.to_payload()
