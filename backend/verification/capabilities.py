"""
What a user may do, derived from role and verification state.

``resolve`` is pure and total: it never raises, and anything it cannot make
sense of degrades to the most restrictive capability set. A missing record is
never treated as approved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from verification.records import VerificationRecord, VerificationStatus


class Role(str, Enum):
    ADMIN = "admin"
    VENDOR = "vendor"
    BUYER_OWNER = "buyer_owner"
    BUYER_MANAGER = "buyer_manager"


_ROLE_ALIASES = {
    "admin": Role.ADMIN,
    "vendor": Role.VENDOR,
    "buyer_owner": Role.BUYER_OWNER,
    "buyerowner": Role.BUYER_OWNER,
    "restaurantowner": Role.BUYER_OWNER,
    "restaurant_owner": Role.BUYER_OWNER,
    "buyer_manager": Role.BUYER_MANAGER,
    "buyermanager": Role.BUYER_MANAGER,
    "restaurantmanager": Role.BUYER_MANAGER,
    "restaurant_manager": Role.BUYER_MANAGER,
}

# Roles whose business capabilities derive from a linked verification record.
ENTITY_ROLES = frozenset({Role.VENDOR, Role.BUYER_OWNER, Role.BUYER_MANAGER})


def parse_role(value: Any) -> Role | None:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        return _ROLE_ALIASES.get(value.strip().lower())
    return None


class Capability(str, Enum):
    """Closed set of capability names. Values are the wire names."""

    CREATE_LISTINGS = "canCreateListings"
    PLACE_ORDERS = "canPlaceOrders"
    MANAGE_BUSINESS = "canManageBusiness"
    ACCESS_DASHBOARD = "canAccessDashboard"
    UPDATE_PROFILE = "canUpdateProfile"


_FIELD_BY_CAPABILITY = {
    Capability.CREATE_LISTINGS: "can_create_listings",
    Capability.PLACE_ORDERS: "can_place_orders",
    Capability.MANAGE_BUSINESS: "can_manage_business",
    Capability.ACCESS_DASHBOARD: "can_access_dashboard",
    Capability.UPDATE_PROFILE: "can_update_profile",
}

# Older payloads name the business capability after restaurants.
_LEGACY_WIRE_NAMES = {"canManageRestaurant": Capability.MANAGE_BUSINESS}


def parse_capability(value: Any) -> Capability | None:
    if isinstance(value, Capability):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Capability(value)
    except ValueError:
        pass
    if value in _LEGACY_WIRE_NAMES:
        return _LEGACY_WIRE_NAMES[value]
    for capability, field_name in _FIELD_BY_CAPABILITY.items():
        if field_name == value:
            return capability
    return None


@dataclass(frozen=True)
class CapabilitySet:
    can_create_listings: bool = False
    can_place_orders: bool = False
    can_manage_business: bool = False
    can_access_dashboard: bool = False
    can_update_profile: bool = True

    def allows(self, capability: Capability | str) -> bool:
        """Lookup by capability name. Unknown names are simply not granted."""
        parsed = parse_capability(capability)
        if parsed is None:
            return False
        return getattr(self, _FIELD_BY_CAPABILITY[parsed])

    def to_payload(self) -> dict[str, bool]:
        return {capability.value: getattr(self, name) for capability, name in _FIELD_BY_CAPABILITY.items()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CapabilitySet":
        values: dict[str, bool] = {}
        for key, value in payload.items():
            capability = parse_capability(key)
            if capability is None:
                continue
            values[_FIELD_BY_CAPABILITY[capability]] = value is True
        return cls(**values)


@dataclass(frozen=True)
class UserContext:
    """The caller whose capabilities are being derived."""

    user_id: str
    role: Role
    linked_entity_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def resolve(record: VerificationRecord | None, role: Role | str | None) -> CapabilitySet:
    """
    Derive the capability set for ``role`` given the linked verification record.

    Rules:
      - can_update_profile is always granted
      - admins always reach the dashboard; other roles need a record
      - vendors create listings only when approved
      - buyer owners/managers place orders only when approved
      - vendors and buyer owners manage their business only when approved
      - a missing record fails closed for every verification-gated capability
    """
    parsed_role = parse_role(role)
    if parsed_role is None:
        return CapabilitySet()

    if parsed_role == Role.ADMIN:
        return CapabilitySet(can_access_dashboard=True)

    if not isinstance(record, VerificationRecord):
        return CapabilitySet()

    approved = record.status == VerificationStatus.APPROVED
    return CapabilitySet(
        can_create_listings=parsed_role == Role.VENDOR and approved,
        can_place_orders=parsed_role in (Role.BUYER_OWNER, Role.BUYER_MANAGER) and approved,
        can_manage_business=parsed_role in (Role.VENDOR, Role.BUYER_OWNER) and approved,
        can_access_dashboard=True,
    )
