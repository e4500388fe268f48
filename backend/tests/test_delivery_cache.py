"""
Tests for the advisory settled-payment cache. Redis is replaced by an
in-memory fake; the database path must behave the same with or without it.
"""

import pytest

from reconciler.models import BookingStatus
from reconciler.schemas.reconciliation import ReconcileOutcome, ReconcileResult
from reconciler.services import booking_service, delivery_cache
from reconciler.services.booking_reference import generate_booking_reference
from reconciler.services.reconciliation_service import reconcile_payment

from conftest import cart_line, checkout_writes_pending, count_bookings, payment_event


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def setex(self, key, ttl, value):
        raise ConnectionError("redis down")


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    client = FakeRedis()

    async def get_fake_redis():
        return client

    monkeypatch.setattr(delivery_cache, "get_redis", get_fake_redis)
    return client


@pytest.mark.asyncio
async def test_settled_result_is_cached(fake_redis):
    result = ReconcileResult(payment_id="pi_cache_1", outcome=ReconcileOutcome.CREATED, count=1,
                             booking_references=["BKG-CACHE1-01-AAAAAAAA"])

    await delivery_cache.mark_settled(result)
    cached = await delivery_cache.get_settled_result("pi_cache_1")

    assert "reconcile:settled:pi_cache_1" in fake_redis.store
    assert fake_redis.ttls["reconcile:settled:pi_cache_1"] == delivery_cache.settings.SETTLED_PAYMENT_TTL
    assert cached.cached is True
    assert cached.booking_references == result.booking_references


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", [
    ReconcileOutcome.NO_BOOKINGS_CREATED,
    ReconcileOutcome.MISSING_CUSTOMER_DATA,
    ReconcileOutcome.CUSTOMER_RESOLUTION_FAILED,
])
async def test_retryable_outcomes_are_not_cached(fake_redis, outcome):
    await delivery_cache.mark_settled(ReconcileResult(payment_id="pi_cache_2", outcome=outcome))
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(fake_redis):
    fake_redis.store["reconcile:settled:pi_cache_3"] = "{not json"
    assert await delivery_cache.get_settled_result("pi_cache_3") is None


@pytest.mark.asyncio
async def test_redis_errors_fail_open(monkeypatch):
    async def get_broken_redis():
        return BrokenRedis()

    monkeypatch.setattr(delivery_cache, "get_redis", get_broken_redis)

    assert await delivery_cache.get_settled_result("pi_cache_4") is None
    await delivery_cache.mark_settled(ReconcileResult(payment_id="pi_cache_4", outcome=ReconcileOutcome.CREATED))


@pytest.mark.asyncio
async def test_redelivery_answered_from_cache(db_session, tours, dispatcher, email_sender, fake_redis):
    event = payment_event("pi_cache_flow", [cart_line("tour_pyramids", index=0)])

    first = await reconcile_payment(db_session, event, dispatcher)
    second = await reconcile_payment(db_session, event, dispatcher)

    assert first.outcome == ReconcileOutcome.CREATED
    assert first.cached is False
    assert second.outcome == ReconcileOutcome.CREATED
    assert second.cached is True
    assert second.booking_references == first.booking_references
    assert await count_bookings(db_session, "pi_cache_flow") == 1
    assert len(email_sender.messages) == 2


@pytest.mark.asyncio
async def test_checkout_row_adopted_mid_run_is_confirmed_before_caching(
    session_factory, tours, existing_customer, dispatcher, email_sender, fake_redis, monkeypatch
):
    customer_id = existing_customer.id
    real_lookup = booking_service.get_bookings_by_payment_id
    checkout_done = []

    async def checkout_lands_after_lookup(db, payment_id):
        bookings = await real_lookup(db, payment_id)
        if not checkout_done:
            async with session_factory() as checkout:
                await checkout_writes_pending(checkout, payment_id, 0, "tour_pyramids", customer_id)
            checkout_done.append(payment_id)
        return bookings

    monkeypatch.setattr(booking_service, "get_bookings_by_payment_id", checkout_lands_after_lookup)
    event = payment_event("pi_cache_race", [cart_line("tour_pyramids", index=0)])

    async with session_factory() as session:
        first = await reconcile_payment(session, event, dispatcher)
    async with session_factory() as session:
        second = await reconcile_payment(session, event, dispatcher)

    reference = generate_booking_reference("pi_cache_race", 0)
    assert first.outcome == ReconcileOutcome.CREATED
    assert first.reused_references == [reference]
    assert second.cached is True
    async with session_factory() as check:
        booking = await booking_service.get_booking_by_reference(check, reference)
        assert booking.status == BookingStatus.CONFIRMED.value
    assert len(email_sender.of_kind("customer_confirmation")) == 1


@pytest.mark.asyncio
async def test_failed_connect_backs_off(monkeypatch):
    attempts = []

    class UnreachableRedis:
        async def ping(self):
            raise ConnectionError("connection refused")

        async def aclose(self):
            pass

    def fake_from_url(url, **kwargs):
        attempts.append(url)
        return UnreachableRedis()

    monkeypatch.setattr(delivery_cache.settings, "REDIS_ENABLED", True)
    monkeypatch.setattr(delivery_cache.redis, "from_url", fake_from_url)

    assert await delivery_cache.get_redis() is None
    assert await delivery_cache.get_redis() is None
    assert len(attempts) == 1
    assert (await delivery_cache.get_cache_stats())["status"] == "unavailable"

    await delivery_cache.close_redis()
