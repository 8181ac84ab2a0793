"""BDD tests for provider webhooks arriving late, twice or out of order."""

from datetime import UTC, datetime, timedelta

import pytest
from delivery.provider.uber_direct import normalize_uber_direct_payload
from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/provider_webhooks.feature")

T0 = datetime(2026, 5, 2, 12, 0, tzinfo=UTC)


def at_minute(minute: int) -> datetime:
    return T0 + timedelta(minutes=minute)


@pytest.fixture()
def outcomes():
    return []


def _uber(dlv, status, minute, imminent=False):
    return {
        "kind": "event.delivery_status",
        "delivery_id": dlv.provider_identifier,
        "status": status,
        "created": at_minute(minute).isoformat(),
        "data": {"courier_imminent": imminent},
    }


def _apply(dlv, update, error, outcomes):
    try:
        outcomes.append(
            dlv.record_provider_update(
                status=update.status,
                occurred_at=update.occurred_at,
                courier=update.courier,
                latitude=update.latitude,
                longitude=update.longitude,
            )
        )
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('Uber Direct reports "{status}" at minute {minute:d}'), target_fixture="dlv")
def uber_reports(dlv, status, minute, error, outcomes):
    _apply(dlv, normalize_uber_direct_payload(_uber(dlv, status, minute)), error, outcomes)
    return dlv


@when(parsers.cfparse('Uber Direct reports imminent "{status}" at minute {minute:d}'), target_fixture="dlv")
def uber_reports_imminent(dlv, status, minute, error, outcomes):
    _apply(dlv, normalize_uber_direct_payload(_uber(dlv, status, minute, imminent=True)), error, outcomes)
    return dlv


@when(parsers.cfparse('the provider reports "{status}" at minute {minute:d}'), target_fixture="dlv")
def provider_reports(dlv, status, minute, error, outcomes):
    try:
        outcomes.append(dlv.record_provider_update(status=status, occurred_at=at_minute(minute)))
    except ValidationError as exc:
        error["exc"] = exc
    return dlv


@when(
    parsers.cfparse('the provider reports "{status}" at minute {minute:d} with courier "{name}"'),
    target_fixture="dlv",
)
def provider_reports_with_courier(dlv, status, minute, name, outcomes):
    outcomes.append(dlv.record_provider_update(status=status, occurred_at=at_minute(minute), courier={"name": name}))
    return dlv


@when(
    parsers.cfparse("the courier is seen at {latitude:f}, {longitude:f} at minute {minute:d}"),
    target_fixture="dlv",
)
def courier_seen(dlv, latitude, longitude, minute, outcomes):
    outcomes.append(
        dlv.record_provider_update(status=None, occurred_at=at_minute(minute), latitude=latitude, longitude=longitude)
    )
    return dlv


@then(parsers.cfparse('the last update outcome is "{outcome}"'))
def last_outcome_is(outcomes, outcome):
    assert outcomes[-1].value == outcome


@then(parsers.cfparse("the courier is at {latitude:f}, {longitude:f}"))
def courier_is_at(dlv, latitude, longitude):
    assert dlv.courier is not None
    assert (dlv.courier.latitude, dlv.courier.longitude) == (latitude, longitude)
