import itertools
from datetime import datetime, timezone

import pytest

from verification.capabilities import (
    Capability,
    CapabilitySet,
    Role,
    parse_capability,
    parse_role,
    resolve,
)
from verification.records import VerificationRecord, VerificationStatus

APPROVED_AT = datetime(2026, 1, 15, tzinfo=timezone.utc)


def _record(status: VerificationStatus) -> VerificationRecord:
    date = APPROVED_AT if status == VerificationStatus.APPROVED else None
    return VerificationRecord(entity_id="entity-1", status=status, verification_date=date)


RECORDS = [None] + [_record(status) for status in VerificationStatus]
ROLES = list(Role) + ["restaurantOwner", "unknown-role", None, 42]


class TestResolve:
    def test_approved_vendor(self):
        caps = resolve(_record(VerificationStatus.APPROVED), Role.VENDOR)
        assert caps == CapabilitySet(
            can_create_listings=True,
            can_place_orders=False,
            can_manage_business=True,
            can_access_dashboard=True,
            can_update_profile=True,
        )

    def test_approved_buyer_manager_cannot_manage_business(self):
        caps = resolve(_record(VerificationStatus.APPROVED), Role.BUYER_MANAGER)
        assert caps.can_place_orders is True
        assert caps.can_manage_business is False
        assert caps.can_create_listings is False

    def test_approved_buyer_owner(self):
        caps = resolve(_record(VerificationStatus.APPROVED), "restaurantOwner")
        assert caps.can_place_orders is True
        assert caps.can_manage_business is True

    @pytest.mark.parametrize("status", [VerificationStatus.PENDING, VerificationStatus.REJECTED])
    @pytest.mark.parametrize("role", [Role.VENDOR, Role.BUYER_OWNER, Role.BUYER_MANAGER])
    def test_unapproved_entities_only_reach_dashboard_and_profile(self, status, role):
        caps = resolve(_record(status), role)
        assert caps == CapabilitySet(can_access_dashboard=True)

    @pytest.mark.parametrize("role", [Role.VENDOR, Role.BUYER_OWNER, Role.BUYER_MANAGER])
    def test_missing_record_fails_closed(self, role):
        caps = resolve(None, role)
        assert caps == CapabilitySet()
        assert caps.can_access_dashboard is False

    @pytest.mark.parametrize("record", RECORDS)
    def test_admin_always_reaches_dashboard(self, record):
        caps = resolve(record, Role.ADMIN)
        assert caps.can_access_dashboard is True
        assert caps.can_create_listings is False
        assert caps.can_place_orders is False

    def test_unknown_role_gets_default_set(self):
        assert resolve(_record(VerificationStatus.APPROVED), "superuser") == CapabilitySet()

    def test_garbage_record_is_treated_as_missing(self):
        assert resolve({"status": "approved"}, Role.VENDOR) == CapabilitySet()


@pytest.mark.parametrize("record, role", list(itertools.product(RECORDS, ROLES)))
def test_resolve_is_total_and_deterministic(record, role):
    first = resolve(record, role)
    assert first == resolve(record, role)
    assert first.can_update_profile is True


def test_only_approved_grants_verification_gated_capabilities():
    gated = ("can_create_listings", "can_place_orders", "can_manage_business")
    for record, role in itertools.product(RECORDS, ROLES):
        caps = resolve(record, role)
        if record is None or not record.is_approved:
            assert not any(getattr(caps, name) for name in gated), (record, role)


class TestCapabilitySet:
    def test_allows_accepts_wire_and_legacy_names(self):
        caps = CapabilitySet(can_manage_business=True)
        assert caps.allows(Capability.MANAGE_BUSINESS)
        assert caps.allows("canManageBusiness")
        assert caps.allows("canManageRestaurant")
        assert caps.allows("can_manage_business")

    def test_unknown_capability_is_not_granted(self):
        assert CapabilitySet(can_access_dashboard=True).allows("canLaunchRockets") is False

    def test_from_payload_ignores_unknown_keys_and_non_true_values(self):
        caps = CapabilitySet.from_payload(
            {"canCreateListings": "yes", "canAccessDashboard": True, "canTeleport": True}
        )
        assert caps.can_create_listings is False
        assert caps.can_access_dashboard is True

    def test_payload_uses_wire_names(self):
        assert set(CapabilitySet().to_payload()) == {capability.value for capability in Capability}


def test_parse_helpers():
    assert parse_role("RestaurantManager") == Role.BUYER_MANAGER
    assert parse_role("root") is None
    assert parse_capability("canPlaceOrders") == Capability.PLACE_ORDERS
    assert parse_capability(None) is None
