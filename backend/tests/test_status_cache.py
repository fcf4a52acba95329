import pytest

from bulk.models import BulkOperationJob, ItemResult, OperationType
from conftest import FakeStatusProvider, vendor_status
from core.errors import TransientFetchError
from verification.cache import StatusCache
from verification.records import VerificationStatus


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeStatusProvider({"vendor-user-1": vendor_status(VerificationStatus.PENDING)})


@pytest.mark.asyncio
class TestStatusCache:
    async def test_hits_within_ttl(self, provider, clock):
        cache = StatusCache(provider, ttl_seconds=30, clock=clock)
        await cache.fetch("vendor-user-1")
        clock.now += 29
        await cache.fetch("vendor-user-1")
        assert provider.calls == ["vendor-user-1"]

        clock.now += 2
        await cache.fetch("vendor-user-1")
        assert len(provider.calls) == 2

    async def test_failures_are_not_cached(self, provider, clock):
        cache = StatusCache(provider, ttl_seconds=30, clock=clock)
        provider.failing = True
        with pytest.raises(TransientFetchError):
            await cache.fetch("vendor-user-1")

        provider.failing = False
        status = await cache.fetch("vendor-user-1")
        assert status.record.is_pending

    async def test_confirmed_transition_invalidates_entity(self, provider, clock):
        cache = StatusCache(provider, ttl_seconds=30, clock=clock)
        await cache.fetch("vendor-user-1")

        approve = BulkOperationJob(OperationType.APPROVE, ("vendor-1",))
        cache.on_item_recorded(approve, "vendor-1", ItemResult.error("Vendor not found"))
        await cache.fetch("vendor-user-1")
        assert len(provider.calls) == 1

        cache.on_item_recorded(approve, "vendor-1", ItemResult.ok())
        await cache.fetch("vendor-user-1")
        assert len(provider.calls) == 2

    async def test_messages_do_not_invalidate(self, provider, clock):
        cache = StatusCache(provider, ttl_seconds=30, clock=clock)
        await cache.fetch("vendor-user-1")

        message = BulkOperationJob(OperationType.MESSAGE, ("vendor-1",))
        cache.on_item_recorded(message, "vendor-1", ItemResult.ok())
        await cache.fetch("vendor-user-1")
        assert len(provider.calls) == 1

    async def test_zero_ttl_disables_caching(self, provider, clock):
        cache = StatusCache(provider, ttl_seconds=0, clock=clock)
        await cache.fetch("vendor-user-1")
        await cache.fetch("vendor-user-1")
        assert len(provider.calls) == 2
