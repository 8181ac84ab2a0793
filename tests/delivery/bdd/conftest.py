"""Shared BDD fixtures and step definitions for the Delivery domain."""

import pytest
from delivery.delivery.delivery import Delivery
from delivery.delivery.events import (
    CourierAssigned,
    CourierLocationUpdated,
    DeliveryCancelled,
    DeliveryCreated,
    DeliveryDispatched,
    DeliveryDispatchFailed,
    DeliveryStatusChanged,
    DispatchAttemptFailed,
    ProviderAssigned,
    RefundAttached,
)
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

_DELIVERY_EVENT_CLASSES = {
    "DeliveryCreated": DeliveryCreated,
    "ProviderAssigned": ProviderAssigned,
    "DeliveryDispatched": DeliveryDispatched,
    "DispatchAttemptFailed": DispatchAttemptFailed,
    "DeliveryDispatchFailed": DeliveryDispatchFailed,
    "DeliveryStatusChanged": DeliveryStatusChanged,
    "CourierAssigned": CourierAssigned,
    "CourierLocationUpdated": CourierLocationUpdated,
    "DeliveryCancelled": DeliveryCancelled,
    "RefundAttached": RefundAttached,
}

_PICK_UP = {"name": "Taqueria", "address": "1 Main St"}
_DROP_OFF = {"name": "Sam", "address": "9 Elm St"}


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a pending delivery with provider "{provider}"'), target_fixture="dlv")
def pending_delivery(provider):
    dlv = Delivery.create(order_id="ord-bdd-001", pick_up=_PICK_UP, drop_off=_DROP_OFF, provider=provider)
    dlv._events.clear()
    return dlv


@given("a pending delivery awaiting the restaurant's choice", target_fixture="dlv")
def deferred_delivery():
    dlv = Delivery.create(order_id="ord-bdd-002", pick_up=_PICK_UP, drop_off=_DROP_OFF, channel="third_party")
    dlv._events.clear()
    return dlv


@given(parsers.cfparse('a dispatched delivery with provider "{provider}"'), target_fixture="dlv")
def dispatched_delivery(provider):
    dlv = Delivery.create(order_id="ord-bdd-003", pick_up=_PICK_UP, drop_off=_DROP_OFF, provider=provider)
    dlv.record_dispatch(provider_identifier=f"{provider}-bdd-1", tracking_url="https://track.example.com/bdd-1")
    dlv._events.clear()
    return dlv


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the delivery moves through "{statuses}"'), target_fixture="dlv")
def move_through(dlv, statuses):
    for status in statuses.split(","):
        dlv.apply_status(status.strip())
    return dlv


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the delivery status is "{status}"'))
def delivery_status_is(dlv, status):
    assert dlv.status == status


@then("the delivery action fails with a validation error")
def delivery_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("a {event_type} event is raised"))
def delivery_event_raised(dlv, event_type):
    event_cls = _DELIVERY_EVENT_CLASSES[event_type]
    assert any(isinstance(e, event_cls) for e in dlv._events), (
        f"No {event_type} event found in {[type(e).__name__ for e in dlv._events]}"
    )


@then(parsers.cfparse("the delivery has {count:d} status changes"))
def delivery_has_n_status_changes(dlv, count):
    assert len(dlv.status_history) == count


@then(parsers.cfparse('the cancellation reason is "{reason}"'))
def cancellation_reason_is(dlv, reason):
    assert dlv.cancellation_reason == reason
