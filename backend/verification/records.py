"""
Verification records: the trust state of one business entity.

State machine:
    pending  --approve-->   approved
    pending  --reject-->    rejected
    rejected --resubmit-->  pending

The three-state status is canonical. The older boolean ``isVerified`` flag is
only understood at the boundary (``from_payload``) and by
``legacy_is_verified``; it never reaches capability resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.errors import InvalidTransitionError


class EntityType(str, Enum):
    """Kinds of business entity subject to verification."""

    VENDOR = "vendor"
    BUYER = "buyer"  # restaurant / buyer account


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_ENTITY_TYPE_ALIASES = {
    "vendor": EntityType.VENDOR,
    "buyer": EntityType.BUYER,
    "restaurant": EntityType.BUYER,
}

_ALLOWED_TRANSITIONS = {
    (VerificationStatus.PENDING, VerificationStatus.APPROVED),
    (VerificationStatus.PENDING, VerificationStatus.REJECTED),
    (VerificationStatus.REJECTED, VerificationStatus.PENDING),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_status(value: Any) -> VerificationStatus:
    """Map a boundary status value onto the canonical enum. Unknown values are pending."""
    if isinstance(value, VerificationStatus):
        return value
    if isinstance(value, str):
        try:
            return VerificationStatus(value.strip().lower())
        except ValueError:
            return VerificationStatus.PENDING
    return VerificationStatus.PENDING


def parse_entity_type(value: Any) -> EntityType:
    if isinstance(value, EntityType):
        return value
    if isinstance(value, str):
        return _ENTITY_TYPE_ALIASES.get(value.strip().lower(), EntityType.VENDOR)
    return EntityType.VENDOR


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC. Garbage yields None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class VerificationRecord:
    """Persisted verification state of one vendor or buyer entity."""

    entity_id: str
    entity_type: EntityType = EntityType.VENDOR
    status: VerificationStatus = VerificationStatus.PENDING
    admin_notes: str | None = None
    verification_date: datetime | None = None
    submitted_at: datetime | None = None
    business_name: str | None = None

    def __post_init__(self):
        if self.verification_date is not None and self.status != VerificationStatus.APPROVED:
            raise ValueError("verification_date may only be set on an approved record")

    # ── Derived views ────────────────────────────────────────────────────

    @property
    def is_pending(self) -> bool:
        return self.status == VerificationStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status == VerificationStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status == VerificationStatus.REJECTED

    @property
    def resubmission_guidance(self) -> str | None:
        """Reviewer feedback, authoritative only while the record is rejected."""
        if self.status != VerificationStatus.REJECTED:
            return None
        return self.admin_notes or None

    def waiting_days(self, now: datetime | None = None) -> int:
        if self.submitted_at is None:
            return 0
        now = now or utcnow()
        return max((now - self.submitted_at).days, 0)

    # ── Transitions ──────────────────────────────────────────────────────

    def _check(self, target: VerificationStatus) -> None:
        if (self.status, target) not in _ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(self.status.value, target.value)

    def approve(self, at: datetime | None = None) -> "VerificationRecord":
        self._check(VerificationStatus.APPROVED)
        return replace(
            self,
            status=VerificationStatus.APPROVED,
            admin_notes=None,
            verification_date=at or utcnow(),
        )

    def reject(self, notes: str | None = None) -> "VerificationRecord":
        self._check(VerificationStatus.REJECTED)
        cleaned = notes.strip() if notes else None
        return replace(
            self,
            status=VerificationStatus.REJECTED,
            admin_notes=cleaned or None,
            verification_date=None,
        )

    def resubmit(self, at: datetime | None = None) -> "VerificationRecord":
        """A new submission arrived; notes are cleared only now, not on intent to resubmit."""
        self._check(VerificationStatus.PENDING)
        return replace(
            self,
            status=VerificationStatus.PENDING,
            admin_notes=None,
            submitted_at=at or utcnow(),
        )

    # ── Boundary ─────────────────────────────────────────────────────────

    def to_payload(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "entity_type": self.entity_type.value,
            "status": self.status.value,
            "admin_notes": self.resubmission_guidance,
            "verification_date": self.verification_date.isoformat() if self.verification_date else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "business_name": self.business_name,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VerificationRecord":
        """
        Build a record from a remote API payload.

        Accepts camelCase or snake_case keys. A missing or unknown status is
        pending; the legacy ``isVerified`` flag is used only when no
        three-state status is present.
        """
        raw_status = _first(payload, "verificationStatus", "verification_status", "status")
        if raw_status is None and "isVerified" in payload:
            status = VerificationStatus.APPROVED if payload.get("isVerified") is True else VerificationStatus.PENDING
        else:
            status = parse_status(raw_status)

        verification_date = parse_timestamp(_first(payload, "verificationDate", "verification_date"))
        if status != VerificationStatus.APPROVED:
            verification_date = None

        notes = _first(payload, "adminNotes", "admin_notes")
        if status == VerificationStatus.APPROVED or not isinstance(notes, str):
            notes = None
        elif not notes.strip():
            notes = None

        entity_id = _first(payload, "entityId", "entity_id", "id", "_id")
        return cls(
            entity_id=str(entity_id) if entity_id is not None else "",
            entity_type=parse_entity_type(_first(payload, "entityType", "entity_type", "businessType")),
            status=status,
            admin_notes=notes.strip() if notes else None,
            verification_date=verification_date,
            submitted_at=parse_timestamp(_first(payload, "submittedAt", "submitted_at", "createdAt")),
            business_name=_first(payload, "businessName", "business_name"),
        )


def legacy_is_verified(record: VerificationRecord | None) -> bool:
    """Two-state view for callers that still speak ``isVerified``."""
    return record is not None and record.status == VerificationStatus.APPROVED


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None
