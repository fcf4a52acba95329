"""
Capability Gate — turns a capability check into an explicit decision.

Order of evaluation:
  1. status query in flight   -> loading
  2. status query failed      -> error   (never falls through to a denial)
  3. capability granted       -> allow
  4. caller fallback supplied -> deny_with_fallback
  5. unverified + restricted  -> deny_with_restriction_screen
  6. otherwise                -> deny_with_message

Steps 1 and 2 short-circuit so a transient outage can never look like a
legitimate business decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from core.errors import TransientFetchError
from verification.capabilities import Capability, CapabilitySet, Role, parse_capability
from verification.records import VerificationRecord, VerificationStatus
from verification.status import BusinessStatus, Restrictions, effective_capabilities

if TYPE_CHECKING:
    from integrations.base import VerificationStatusProvider

logger = structlog.get_logger()

ERROR_MESSAGE = "Unable to verify permissions. Please refresh the page and try again."
GENERIC_ACTION = "perform this action"

CAPABILITY_ACTIONS = {
    Capability.CREATE_LISTINGS: "create listings",
    Capability.PLACE_ORDERS: "place orders",
    Capability.MANAGE_BUSINESS: "manage business",
    Capability.ACCESS_DASHBOARD: "access dashboard",
    Capability.UPDATE_PROFILE: "update profile",
}


class DecisionKind(str, Enum):
    ALLOW = "allow"
    LOADING = "loading"
    ERROR = "error"
    DENY_WITH_FALLBACK = "deny_with_fallback"
    DENY_WITH_RESTRICTION_SCREEN = "deny_with_restriction_screen"
    DENY_WITH_MESSAGE = "deny_with_message"


@dataclass(frozen=True)
class GateDecision:
    kind: DecisionKind
    message: str | None = None
    content: Any = None
    next_steps: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.kind == DecisionKind.ALLOW

    def to_payload(self) -> dict[str, Any]:
        return {
            "decision": self.kind.value,
            "allowed": self.allowed,
            "message": self.message,
            "next_steps": list(self.next_steps),
        }


def action_text(capability: Capability | str) -> str:
    parsed = parse_capability(capability)
    if parsed is None:
        return GENERIC_ACTION
    return CAPABILITY_ACTIONS.get(parsed, GENERIC_ACTION)


def _denial_message(
    capability: Capability | str,
    restrictions: Restrictions,
    record: VerificationRecord | None,
    custom_message: str | None,
) -> str:
    if custom_message:
        return custom_message
    action = action_text(capability)
    if record is not None and record.status == VerificationStatus.REJECTED:
        guidance = record.resubmission_guidance
        if guidance:
            return f"Your business verification was rejected: {guidance}. Update your details and resubmit to {action}."
        return f"Your business verification was rejected. Update your details and resubmit to {action}."
    if restrictions.reason:
        return restrictions.reason
    return f"You don't have permission to {action}"


def evaluate(
    capability: Capability | str,
    capabilities: CapabilitySet | None,
    *,
    loading: bool = False,
    error: BaseException | str | None = None,
    fallback: Any = None,
    restrictions: Restrictions | None = None,
    record: VerificationRecord | None = None,
    next_steps: tuple[str, ...] = (),
    custom_message: str | None = None,
) -> GateDecision:
    """Decide what the caller gets for ``capability``. Never raises on unknown names."""
    if loading:
        return GateDecision(DecisionKind.LOADING)
    if error is not None:
        return GateDecision(DecisionKind.ERROR, message=ERROR_MESSAGE)

    if capabilities is not None and capabilities.allows(capability):
        return GateDecision(DecisionKind.ALLOW)

    if fallback is not None:
        return GateDecision(DecisionKind.DENY_WITH_FALLBACK, content=fallback)

    restrictions = restrictions or Restrictions()
    message = _denial_message(capability, restrictions, record, custom_message)
    unverified = record is None or record.status != VerificationStatus.APPROVED
    if unverified and restrictions.has_restrictions:
        return GateDecision(
            DecisionKind.DENY_WITH_RESTRICTION_SCREEN,
            message=message,
            next_steps=tuple(next_steps),
        )
    return GateDecision(DecisionKind.DENY_WITH_MESSAGE, message=message, next_steps=tuple(next_steps))


class CapabilityGate:
    """
    Evaluates capabilities against one status snapshot.

    The snapshot is fetched once; a failed fetch is kept as the gate's error
    state rather than raised, so every evaluation on it returns ``error``.
    """

    def __init__(
        self,
        status: BusinessStatus | None = None,
        *,
        role: Role | str | None = None,
        loading: bool = False,
        error: BaseException | str | None = None,
    ):
        self.status = status
        self.role = role
        self.loading = loading
        self.error = error

    @classmethod
    async def load(
        cls,
        provider: "VerificationStatusProvider",
        user_id: str,
        *,
        role: Role | str | None = None,
    ) -> "CapabilityGate":
        try:
            status = await provider.fetch(user_id)
        except TransientFetchError as exc:
            logger.warning("verification.gate.status_unavailable", user_id=user_id, error=str(exc))
            return cls(role=role, error=exc)
        return cls(status, role=role)

    @property
    def capabilities(self) -> CapabilitySet | None:
        if self.status is None:
            return None
        return effective_capabilities(self.status, self.role)

    def evaluate(
        self,
        capability: Capability | str,
        *,
        fallback: Any = None,
        custom_message: str | None = None,
    ) -> GateDecision:
        status = self.status
        return evaluate(
            capability,
            self.capabilities,
            loading=self.loading,
            error=self.error,
            fallback=fallback,
            restrictions=status.restrictions if status else None,
            record=status.record if status else None,
            next_steps=status.next_steps if status else (),
            custom_message=custom_message,
        )
