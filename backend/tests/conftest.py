"""
Test Configuration — in-memory verification backends and an API test client.

The remote verification service is replaced by fakes: a status provider
keyed by user id and a bulk backend whose per-entity behaviour (delay,
refusal, transport error, channel fault, manual release) is scripted per test.
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import get_orchestrator, get_status_provider
from api.main import app
from bulk.models import OperationType
from bulk.orchestrator import BulkOperationOrchestrator
from core.errors import OrchestrationFault, PerItemTransitionError, TransientFetchError
from integrations.base import (
    BulkTransitionBackend,
    TransitionError,
    TransitionResult,
    VerificationStatusProvider,
)
from verification.capabilities import Role, UserContext
from verification.records import EntityType, VerificationRecord, VerificationStatus
from verification.status import BusinessStatus, Restrictions

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
VENDOR_HEADERS = {"X-User-Id": "vendor-user-1", "X-User-Role": "vendor", "X-Entity-Id": "vendor-1"}
BUYER_HEADERS = {"X-User-Id": "buyer-user-1", "X-User-Role": "restaurantOwner", "X-Entity-Id": "buyer-1"}


class FakeStatusProvider(VerificationStatusProvider):
    def __init__(self, statuses: dict[str, BusinessStatus] | None = None, failing: bool = False):
        self.statuses = dict(statuses or {})
        self.failing = failing
        self.calls: list[str] = []

    async def fetch(self, user_id: str) -> BusinessStatus:
        self.calls.append(user_id)
        if self.failing:
            raise TransientFetchError("verification service unavailable")
        return self.statuses.get(user_id, BusinessStatus())


class FakeBulkBackend(BulkTransitionBackend):
    def __init__(
        self,
        *,
        delays: dict[str, float] | None = None,
        refusals: dict[str, str] | None = None,
        transport_errors: set[str] | None = None,
        fault_on: set[str] | None = None,
        export_rows: list[dict] | None = None,
        default_delay: float = 0.0,
    ):
        self.delays = dict(delays or {})
        self.refusals = dict(refusals or {})
        self.transport_errors = set(transport_errors or ())
        self.fault_on = set(fault_on or ())
        self.export_rows = list(export_rows or [])
        self.default_delay = default_delay
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[OperationType, list[str], dict]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def hold(self, *entity_ids: str) -> None:
        """Block the listed entities until ``release`` is called."""
        for entity_id in entity_ids:
            self.gates[entity_id] = asyncio.Event()

    def release(self, *entity_ids: str) -> None:
        for entity_id in entity_ids or tuple(self.gates):
            self.gates[entity_id].set()

    @property
    def called_ids(self) -> list[str]:
        return [entity_ids[0] for _, entity_ids, _ in self.calls]

    async def transition(
        self,
        operation: OperationType,
        entity_ids: list[str],
        *,
        reason: str | None = None,
        message: str | None = None,
        notify: bool = True,
    ) -> TransitionResult:
        self.calls.append((operation, list(entity_ids), {"reason": reason, "message": message, "notify": notify}))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for entity_id in entity_ids:
                gate = self.gates.get(entity_id)
                if gate is not None:
                    await gate.wait()
            delay = max(self.delays.get(entity_id, self.default_delay) for entity_id in entity_ids)
            if delay:
                await asyncio.sleep(delay)
            if self.fault_on.intersection(entity_ids):
                raise OrchestrationFault("verification service refused bulk request (401)")
            for entity_id in entity_ids:
                if entity_id in self.transport_errors:
                    raise PerItemTransitionError(entity_id, "transport error: ConnectError")
            errors = [
                TransitionError(entity_id, self.refusals[entity_id])
                for entity_id in entity_ids
                if entity_id in self.refusals
            ]
            return TransitionResult(processed=len(entity_ids), errors=errors)
        finally:
            self.in_flight -= 1

    async def fetch_export_rows(self, entity_ids: list[str]) -> list[dict]:
        self.calls.append((OperationType.EXPORT, list(entity_ids), {}))
        return list(self.export_rows)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


# ── Status snapshots ──────────────────────────────────────────────────────


def vendor_status(
    status: VerificationStatus | None,
    *,
    notes: str | None = None,
    restricted: bool = False,
    reason: str | None = None,
) -> BusinessStatus:
    record = None
    if status is not None:
        record = VerificationRecord(
            entity_id="vendor-1",
            entity_type=EntityType.VENDOR,
            status=status,
            admin_notes=notes,
            business_name="Green Valley Farms",
        )
    return BusinessStatus(
        user=UserContext("vendor-user-1", Role.VENDOR, "vendor-1"),
        record=record,
        restrictions=Restrictions(has_restrictions=restricted, reason=reason),
        next_steps=("Upload your business license",) if restricted else (),
    )


@pytest.fixture
def status_provider():
    return FakeStatusProvider()


@pytest.fixture
def bulk_backend():
    return FakeBulkBackend()


@pytest.fixture
async def orchestrator(bulk_backend):
    orch = BulkOperationOrchestrator(
        bulk_backend,
        worker_count=3,
        item_timeout_seconds=1.0,
        retention_seconds=3600,
    )
    yield orch
    await orch.shutdown()


@pytest.fixture
async def client(status_provider, orchestrator):
    """Create an async test client with the remote service swapped for fakes."""
    app.dependency_overrides[get_status_provider] = lambda: status_provider
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
