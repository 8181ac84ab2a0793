"""Application tests for DeliveryDispatcher: provider round-trips with retries."""

import asyncio
import json

import pytest
from delivery.delivery.assignment import AmendDropOff, AssignProvider
from delivery.delivery.creation import CreateDelivery
from delivery.delivery.delivery import Delivery
from delivery.delivery.dispatch import RecordDispatch
from delivery.delivery.exceptions import CancelError, InvalidStateError, TerminalStateError
from delivery.delivery.tracking import UpdateDeliveryStatus
from delivery.provider import get_provider, set_provider
from delivery.provider.fake import FakeProvider
from delivery.services.dispatcher import DeliveryDispatcher, RetryPolicy
from delivery.services.locks import DeliveryLocks, process_locked
from protean import current_domain


def _create(order_id, provider="chaskis"):
    return current_domain.process(
        CreateDelivery(
            order_id=order_id,
            channel="third_party",
            provider=provider,
            pick_up=json.dumps({"name": "Taqueria", "address": "1 Main St"}),
            drop_off=json.dumps({"name": "Sam", "address": "9 Elm St"}),
        ),
        asynchronous=False,
    )


@pytest.fixture
def delays():
    return []


@pytest.fixture
def dispatcher(delays):
    async def sleep(seconds):
        delays.append(seconds)

    return DeliveryDispatcher(policy=RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0.0), sleep=sleep)


class TestRetryPolicy:
    def test_exponential_backoff(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0, jitter=0.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.25)
        for _ in range(20):
            assert 1.0 <= policy.delay_for(1) <= 1.25

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DELIVERY_DISPATCH_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("DELIVERY_DISPATCH_BASE_DELAY", "0.1")
        policy = RetryPolicy.from_env()
        assert (policy.max_attempts, policy.base_delay) == (5, 0.1)


class TestDispatch:
    async def test_first_attempt_succeeds(self, dispatcher, delays):
        dlv_id = _create("ord-dispatch-1")
        dlv = await dispatcher.dispatch(dlv_id)

        assert dlv.is_dispatched
        assert dlv.provider_identifier.startswith("fake-chaskis-")
        assert dlv.tracking_url is not None
        assert dlv.dispatch_attempts == 1
        assert dlv.status == "pending"
        assert delays == []

    async def test_retries_transient_failures(self, dispatcher, delays):
        get_provider("chaskis").configure(fail_times=2)
        dlv_id = _create("ord-dispatch-2")

        dlv = await dispatcher.dispatch(dlv_id)

        assert dlv.is_dispatched
        assert dlv.dispatch_attempts == 3
        assert delays == [0.5, 1.0]

    async def test_exhausted_attempts_mark_failed(self, dispatcher, delays):
        get_provider("chaskis").configure(should_succeed=False, failure_reason="No couriers nearby")
        dlv_id = _create("ord-dispatch-3")

        dlv = await dispatcher.dispatch(dlv_id)

        assert dlv.status == "cancelled"
        assert dlv.cancellation_reason == "dispatch_failed"
        assert dlv.failure_reason == "No couriers nearby"
        assert dlv.dispatch_attempts == 3
        assert len(delays) == 2

    async def test_permanent_failure_is_not_retried(self, dispatcher, delays):
        get_provider("chaskis").configure(should_succeed=False, retryable=False, failure_reason="Out of zone")
        dlv_id = _create("ord-dispatch-4")

        dlv = await dispatcher.dispatch(dlv_id)

        assert dlv.status == "cancelled"
        assert dlv.dispatch_attempts == 1
        assert delays == []

    async def test_dispatch_is_idempotent(self, dispatcher):
        dlv_id = _create("ord-dispatch-5")
        first = await dispatcher.dispatch(dlv_id)
        second = await dispatcher.dispatch(dlv_id)

        assert second.provider_identifier == first.provider_identifier
        assert get_provider("chaskis").dispatch_calls == 1

    async def test_requires_provider(self, dispatcher):
        dlv_id = current_domain.process(
            CreateDelivery(
                order_id="ord-dispatch-6",
                channel="third_party",
                pick_up=json.dumps({"name": "Taqueria", "address": "1 Main St"}),
                drop_off=json.dumps({"name": "Sam", "address": "9 Elm St"}),
            ),
            asynchronous=False,
        )
        with pytest.raises(InvalidStateError):
            await dispatcher.dispatch(dlv_id)

    async def test_cancelled_delivery_cannot_be_dispatched(self, dispatcher):
        dlv_id = _create("ord-dispatch-7")
        await dispatcher.cancel(dlv_id, reason="Changed plans")
        with pytest.raises(InvalidStateError):
            await dispatcher.dispatch(dlv_id)


class TestEstimate:
    async def test_quote_recorded_as_fees(self, dispatcher):
        get_provider("uberDirect").configure(fee=6.75)
        dlv_id = _create("ord-estimate-1", provider="uberDirect")

        quote = await dispatcher.estimate(dlv_id)

        assert quote.amount == 6.75
        dlv = current_domain.repository_for(Delivery).get(dlv_id)
        assert dlv.fees.amount == 6.75

    async def test_fees_frozen_after_dispatch(self, dispatcher):
        dlv_id = _create("ord-estimate-2")
        await dispatcher.dispatch(dlv_id)
        with pytest.raises(InvalidStateError):
            await dispatcher.estimate(dlv_id)


class TestCancel:
    async def test_cancel_before_dispatch_skips_provider(self, dispatcher):
        dlv_id = _create("ord-dcancel-1")
        dlv = await dispatcher.cancel(dlv_id, reason="Kitchen closed")

        assert dlv.status == "cancelled"
        assert get_provider("chaskis").cancelled == []

    async def test_cancel_dispatched_calls_provider(self, dispatcher):
        dlv_id = _create("ord-dcancel-2")
        dispatched = await dispatcher.dispatch(dlv_id)

        dlv = await dispatcher.cancel(dlv_id, reason="Customer called")

        assert dlv.status == "cancelled"
        assert get_provider("chaskis").cancelled == [dispatched.provider_identifier]

    async def test_provider_refusal_leaves_delivery_untouched(self, dispatcher):
        dlv_id = _create("ord-dcancel-3")
        await dispatcher.dispatch(dlv_id)
        get_provider("chaskis").configure(should_succeed=False, failure_reason="Courier already en route")

        with pytest.raises(CancelError):
            await dispatcher.cancel(dlv_id, reason="Customer called")

        assert current_domain.repository_for(Delivery).get(dlv_id).status == "pending"

    async def test_cannot_cancel_after_pickup(self, dispatcher):
        dlv_id = _create("ord-dcancel-4", provider="store")
        for status in ("pickup", "pickup_imminent", "pickup_complete"):
            current_domain.process(UpdateDeliveryStatus(delivery_id=dlv_id, status=status), asynchronous=False)
        with pytest.raises(InvalidStateError):
            await dispatcher.cancel(dlv_id, reason="Too late")

    async def test_terminal_delivery(self, dispatcher):
        dlv_id = _create("ord-dcancel-5")
        await dispatcher.cancel(dlv_id, reason="First")
        with pytest.raises(TerminalStateError):
            await dispatcher.cancel(dlv_id, reason="Second")

    async def test_lock_released_after_cancel(self, delays):
        locks = DeliveryLocks()

        async def sleep(seconds):
            delays.append(seconds)

        dispatcher = DeliveryDispatcher(locks=locks, sleep=sleep)
        dlv_id = _create("ord-dcancel-6")
        await dispatcher.cancel(dlv_id, reason="Done")
        assert len(locks) == 0

    async def test_lock_released_after_failed_dispatch(self, delays):
        locks = DeliveryLocks()

        async def sleep(seconds):
            delays.append(seconds)

        get_provider("chaskis").configure(should_succeed=False, retryable=False)
        dispatcher = DeliveryDispatcher(locks=locks, sleep=sleep)
        dlv_id = _create("ord-dcancel-7")

        dlv = await dispatcher.dispatch(dlv_id)

        assert dlv.status == "cancelled"
        assert len(locks) == 0


class GatedProvider(FakeProvider):
    """Fake provider whose dispatch blocks until the test opens the gate."""

    def __init__(self, provider):
        super().__init__(provider)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self.sent_addresses = []

    async def dispatch(self, delivery):
        self.sent_addresses.append(delivery.drop_off.address)
        self.entered.set()
        await self.gate.wait()
        return await super().dispatch(delivery)


class TestChangesDuringDispatch:
    async def test_provider_switch_waits_for_inflight_dispatch(self, dispatcher):
        gated = GatedProvider("chaskis")
        set_provider("chaskis", gated)
        dlv_id = _create("ord-inflight-1")

        dispatching = asyncio.create_task(dispatcher.dispatch(dlv_id))
        await gated.entered.wait()
        switching = asyncio.create_task(process_locked(AssignProvider(delivery_id=dlv_id, provider="store")))
        amending = asyncio.create_task(
            process_locked(
                AmendDropOff(delivery_id=dlv_id, drop_off=json.dumps({"name": "Sam", "address": "77 Other Rd"}))
            )
        )
        await asyncio.sleep(0)
        assert not switching.done()
        assert not amending.done()

        gated.gate.set()
        await dispatching
        with pytest.raises(InvalidStateError):
            await switching
        with pytest.raises(InvalidStateError):
            await amending

        dlv = current_domain.repository_for(Delivery).get(dlv_id)
        assert dlv.provider == "chaskis"
        assert dlv.provider_identifier.startswith("fake-chaskis-")
        assert dlv.drop_off.address == gated.sent_addresses[0] == "9 Elm St"

    async def test_other_deliveries_are_not_blocked(self, dispatcher):
        gated = GatedProvider("chaskis")
        set_provider("chaskis", gated)
        blocked_id = _create("ord-inflight-2")
        free_id = _create("ord-inflight-3", provider="store")

        dispatching = asyncio.create_task(dispatcher.dispatch(blocked_id))
        await gated.entered.wait()
        drop_off = json.dumps({"name": "Sam", "address": "5 Pine"})
        await process_locked(AmendDropOff(delivery_id=free_id, drop_off=drop_off))

        assert current_domain.repository_for(Delivery).get(free_id).drop_off.address == "5 Pine"
        gated.gate.set()
        await dispatching

    def test_dispatch_answer_for_another_provider_rejected(self):
        dlv_id = _create("ord-inflight-4", provider="store")
        with pytest.raises(InvalidStateError):
            current_domain.process(
                RecordDispatch(delivery_id=dlv_id, provider="chaskis", provider_identifier="fake-chaskis-1"),
                asynchronous=False,
            )
        assert current_domain.repository_for(Delivery).get(dlv_id).provider_identifier is None
