"""Business status snapshots as returned by the verification status provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from verification.capabilities import ENTITY_ROLES, CapabilitySet, Role, UserContext, parse_role, resolve
from verification.records import VerificationRecord, VerificationStatus


@dataclass(frozen=True)
class Restrictions:
    has_restrictions: bool = False
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Restrictions":
        if not isinstance(payload, dict):
            return cls()
        reason = payload.get("reason")
        return cls(
            has_restrictions=payload.get("hasRestrictions", payload.get("has_restrictions")) is True,
            reason=reason if isinstance(reason, str) and reason.strip() else None,
        )


@dataclass(frozen=True)
class BusinessStatus:
    """
    One provider answer for one user.

    ``capabilities`` is None when the provider did not precompute them; in that
    case ``effective_capabilities`` falls back to the local resolver.
    """

    user: UserContext | None = None
    record: VerificationRecord | None = None
    capabilities: CapabilitySet | None = None
    restrictions: Restrictions = field(default_factory=Restrictions)
    next_steps: tuple[str, ...] = ()

    @property
    def role(self) -> Role | None:
        return self.user.role if self.user else None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], user_id: str | None = None) -> "BusinessStatus":
        user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        user = None
        role = parse_role(user_payload.get("role"))
        if role is not None:
            uid = user_payload.get("id", user_payload.get("_id", user_id))
            user = UserContext(
                user_id=str(uid) if uid is not None else "",
                role=role,
                linked_entity_id=_linked_entity_id(payload, role),
            )

        record_payload = payload.get("record")
        if not isinstance(record_payload, dict):
            record_payload = payload.get("businessVerification")
        record = None
        if isinstance(record_payload, dict) and record_payload:
            record = VerificationRecord.from_payload(record_payload)
            if not record.entity_id and user is not None and user.linked_entity_id:
                record = VerificationRecord.from_payload({**record_payload, "entityId": user.linked_entity_id})

        capabilities_payload = payload.get("capabilities")
        capabilities = (
            CapabilitySet.from_payload(capabilities_payload) if isinstance(capabilities_payload, dict) else None
        )

        steps = payload.get("nextSteps", payload.get("next_steps"))
        if not isinstance(steps, (list, tuple)):
            steps = ()
        return cls(
            user=user,
            record=record,
            capabilities=capabilities,
            restrictions=Restrictions.from_payload(payload.get("restrictions")),
            next_steps=tuple(str(step) for step in steps if isinstance(step, str)),
        )


def _linked_entity_id(payload: dict[str, Any], role: Role) -> str | None:
    if role == Role.ADMIN:
        return None
    info = payload.get("businessInfo")
    if isinstance(info, dict):
        for key in ("vendor", "restaurant", "buyer"):
            entity = info.get(key)
            if isinstance(entity, dict):
                entity_id = entity.get("id", entity.get("_id"))
                if entity_id is not None:
                    return str(entity_id)
    record_payload = payload.get("record") or payload.get("businessVerification")
    if isinstance(record_payload, dict):
        entity_id = record_payload.get("entityId", record_payload.get("entity_id"))
        if entity_id is not None:
            return str(entity_id)
    return None


def effective_capabilities(status: BusinessStatus, role: Role | str | None = None) -> CapabilitySet:
    """Provider capabilities are authoritative; only compute locally when none were supplied."""
    if status.capabilities is not None:
        return status.capabilities
    return resolve(status.record, role if role is not None else status.role)


def needs_verification(status: BusinessStatus) -> bool:
    role = status.role
    if role not in ENTITY_ROLES:
        return False
    return status.record is None or status.record.status != VerificationStatus.APPROVED


def shows_restriction_screen(status: BusinessStatus) -> bool:
    record = status.record
    unverified = record is None or record.status != VerificationStatus.APPROVED
    return unverified and status.restrictions.has_restrictions


def verification_progress(status: BusinessStatus) -> int:
    if status.record is not None and status.record.is_approved:
        return 100
    if status.record is not None:
        return 50
    return 0


def status_display(status: BusinessStatus | None) -> dict[str, str]:
    if status is None:
        return {"text": "Loading...", "tone": "neutral", "description": ""}

    record = status.record
    if record is not None and record.is_approved:
        return {
            "text": "Verified Business",
            "tone": "success",
            "description": f"Your {record.entity_type.value} business is verified and active.",
        }
    if record is not None and record.is_rejected:
        return {
            "text": "Verification Rejected",
            "tone": "danger",
            "description": record.resubmission_guidance or "Please review your details and resubmit.",
        }
    if status.restrictions.has_restrictions:
        return {
            "text": "Verification Pending",
            "tone": "warning",
            "description": status.restrictions.reason or "Your business is awaiting review.",
        }
    return {"text": "Active", "tone": "info", "description": "Account is active"}
