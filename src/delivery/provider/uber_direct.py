"""Uber Direct adapter: on-demand couriers through the Uber Direct API.

Uber reports a coarse status (pickup, dropoff, ...) and flags the
approach to each stop with ``data.courier_imminent``; the adapter folds
that flag into the domain's ``*_imminent`` statuses. Fees come back in
minor units (cents).

The imminent flag is optional, so a plain ``pickup`` followed by
``pickup_complete`` skips a stage. Deployments normally run Uber Direct
with ``DELIVERY_SKIP_TOLERANT_PROVIDERS=uberDirect``; without it such
callbacks are rejected as invalid transitions.
"""

import httpx

from delivery.delivery.exceptions import (
    CancelError,
    UberDirectDispatchError,
    UnrecognizedPayloadError,
)
from delivery.delivery.lifecycle import DeliveryStatus
from delivery.provider.http import HttpProviderAdapter, error_code
from delivery.provider.payloads import coordinates, parse_timestamp, require
from delivery.provider.port import DispatchResult, ProviderSettings, ProviderUpdate, Quote

PROVIDER = "uberDirect"

DEFAULT_BASE_URL = "https://api.uber.com/v1"

_STATUS_MAP = {
    "pending": DeliveryStatus.PENDING,
    "pickup": DeliveryStatus.PICKUP,
    "pickup_complete": DeliveryStatus.PICKUP_COMPLETE,
    "dropoff": DeliveryStatus.DROPOFF,
    "delivered": DeliveryStatus.DELIVERED,
    "canceled": DeliveryStatus.CANCELLED,
    "returned": DeliveryStatus.RETURNED,
}

_IMMINENT = {
    DeliveryStatus.PICKUP: DeliveryStatus.PICKUP_IMMINENT,
    DeliveryStatus.DROPOFF: DeliveryStatus.DROPOFF_IMMINENT,
}

_ALREADY_CANCELLED_CODES = frozenset({"delivery_already_canceled", "noncancelable_delivery_canceled"})


def _courier_from(data: dict) -> dict | None:
    courier = data.get("courier")
    if not courier or not courier.get("name"):
        return None
    return {
        "courier_id": courier.get("public_key") or courier.get("name"),
        "name": courier["name"],
        "phone": courier.get("phone_number"),
        "image_url": courier.get("img_href"),
    }


def normalize_uber_direct_payload(payload: dict) -> ProviderUpdate:
    """Translate an Uber Direct webhook into a ``ProviderUpdate``."""
    kind = require(payload, "kind", PROVIDER)
    delivery_id = require(payload, "delivery_id", PROVIDER)
    data = payload.get("data") or {}
    occurred_at = parse_timestamp(payload.get("created"), PROVIDER)

    if kind == "event.delivery_status":
        raw_status = payload.get("status") or data.get("status")
        if raw_status not in _STATUS_MAP:
            raise UnrecognizedPayloadError(PROVIDER, f"Unknown delivery status: {raw_status!r}")
        status = _STATUS_MAP[raw_status]
        if data.get("courier_imminent"):
            status = _IMMINENT.get(status, status)

        courier = _courier_from(data)
        latitude, longitude = coordinates((data.get("courier") or {}).get("location"))
        return ProviderUpdate(
            provider_identifier=delivery_id,
            occurred_at=occurred_at,
            status=status.value,
            courier=courier,
            latitude=latitude,
            longitude=longitude,
            raw_event=f"{kind}:{raw_status}",
        )

    if kind == "event.courier_update":
        latitude, longitude = coordinates(payload.get("location") or (data.get("courier") or {}).get("location"))
        if latitude is None:
            raise UnrecognizedPayloadError(PROVIDER, "Courier update without a location")
        return ProviderUpdate(
            provider_identifier=delivery_id,
            occurred_at=occurred_at,
            courier=_courier_from(data),
            latitude=latitude,
            longitude=longitude,
            raw_event=kind,
        )

    raise UnrecognizedPayloadError(PROVIDER, f"Unknown event kind: {kind!r}")


class UberDirectAdapter(HttpProviderAdapter):
    provider = PROVIDER

    def __init__(
        self,
        customer_id: str,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        settings: ProviderSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            base_url=f"{base_url.rstrip('/')}/customers/{customer_id}",
            headers={"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"},
            settings=settings,
            client=client,
        )

    def _delivery_body(self, delivery) -> dict:
        pick_up, drop_off = delivery.pick_up, delivery.drop_off
        body = {
            "external_id": str(delivery.id),
            "manifest_reference": str(delivery.order_id),
            "pickup_name": pick_up.name,
            "pickup_address": pick_up.address,
            "pickup_phone_number": pick_up.phone,
            "pickup_notes": pick_up.note,
            "dropoff_name": drop_off.name,
            "dropoff_address": drop_off.address,
            "dropoff_phone_number": drop_off.phone,
            "dropoff_notes": drop_off.note,
        }
        if pick_up.ready_time:
            body["pickup_ready_dt"] = pick_up.ready_time.isoformat()
        if drop_off.deadline_time:
            body["dropoff_deadline_dt"] = drop_off.deadline_time.isoformat()
        return {key: value for key, value in body.items() if value is not None}

    async def quote(self, delivery) -> Quote:
        response = await self._request(
            "POST",
            "/delivery_quotes",
            UberDirectDispatchError,
            json={
                "pickup_address": delivery.pick_up.address,
                "dropoff_address": delivery.drop_off.address,
            },
        )
        self._raise_for_status(response, UberDirectDispatchError, "Quote rejected")
        body = response.json()
        return Quote(
            amount=body["fee"] / 100,
            currency=str(body.get("currency", "usd")).upper(),
            eta_minutes=body.get("duration"),
        )

    async def dispatch(self, delivery) -> DispatchResult:
        payload = self._delivery_body(delivery)
        response = await self._request("POST", "/deliveries", UberDirectDispatchError, json=payload)
        self._raise_for_status(response, UberDirectDispatchError, "Delivery rejected")
        body = response.json()
        return DispatchResult(
            provider_identifier=body["id"],
            tracking_url=body.get("tracking_url"),
            eta_time=parse_timestamp(body["dropoff_eta"], PROVIDER) if body.get("dropoff_eta") else None,
            collection_code=(body.get("pickup") or {}).get("verification_code"),
        )

    async def cancel(self, provider_identifier: str) -> None:
        response = await self._request("POST", f"/deliveries/{provider_identifier}/cancel", CancelError)
        if response.is_success or error_code(response) in _ALREADY_CANCELLED_CODES:
            return
        self._raise_for_status(response, CancelError, "Cancellation rejected")

    def normalize_webhook(self, payload: dict) -> ProviderUpdate:
        return normalize_uber_direct_payload(payload)
