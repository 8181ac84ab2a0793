"""Chaskis adapter: regional courier network.

Chaskis reports every leg of the trip as its own status, so its
callbacks map one-to-one onto the domain lifecycle. Driver positions
arrive as separate ``delivery.location_updated`` events.
"""

import httpx

from delivery.delivery.exceptions import CancelError, ChaskisDispatchError, UnrecognizedPayloadError
from delivery.delivery.lifecycle import DeliveryStatus
from delivery.provider.http import HttpProviderAdapter, error_code
from delivery.provider.payloads import coordinates, parse_timestamp, require
from delivery.provider.port import DispatchResult, ProviderSettings, ProviderUpdate, Quote

PROVIDER = "chaskis"

DEFAULT_BASE_URL = "https://api.chaskis.com/v1"

_STATUS_MAP = {
    "CREATED": DeliveryStatus.PENDING,
    "ASSIGNED": DeliveryStatus.PICKUP,
    "GOING_TO_PICKUP": DeliveryStatus.PICKUP,
    "ARRIVING_AT_PICKUP": DeliveryStatus.PICKUP_IMMINENT,
    "PICKED_UP": DeliveryStatus.PICKUP_COMPLETE,
    "GOING_TO_DROPOFF": DeliveryStatus.DROPOFF,
    "ARRIVING_AT_DROPOFF": DeliveryStatus.DROPOFF_IMMINENT,
    "DELIVERED": DeliveryStatus.DELIVERED,
    "CANCELED": DeliveryStatus.CANCELLED,
    "RETURNED": DeliveryStatus.RETURNED,
}


def _driver_from(data: dict) -> dict | None:
    driver = data.get("driver")
    if not driver or not driver.get("name"):
        return None
    return {
        "courier_id": str(driver.get("id") or driver["name"]),
        "name": driver["name"],
        "phone": driver.get("phone"),
        "image_url": driver.get("photo_url"),
    }


def normalize_chaskis_payload(payload: dict) -> ProviderUpdate:
    """Translate a Chaskis webhook into a ``ProviderUpdate``."""
    event = require(payload, "event", PROVIDER)
    data = require(payload, "data", PROVIDER)
    delivery_id = require(data, "id", PROVIDER)
    occurred_at = parse_timestamp(data.get("timestamp") or payload.get("sent_at"), PROVIDER)
    latitude, longitude = coordinates(data.get("location"))

    if event == "delivery.status_updated":
        raw_status = data.get("status")
        if raw_status not in _STATUS_MAP:
            raise UnrecognizedPayloadError(PROVIDER, f"Unknown delivery status: {raw_status!r}")
        return ProviderUpdate(
            provider_identifier=str(delivery_id),
            occurred_at=occurred_at,
            status=_STATUS_MAP[raw_status].value,
            courier=_driver_from(data),
            latitude=latitude,
            longitude=longitude,
            raw_event=f"{event}:{raw_status}",
        )

    if event == "delivery.location_updated":
        if latitude is None:
            raise UnrecognizedPayloadError(PROVIDER, "Location update without coordinates")
        return ProviderUpdate(
            provider_identifier=str(delivery_id),
            occurred_at=occurred_at,
            courier=_driver_from(data),
            latitude=latitude,
            longitude=longitude,
            raw_event=event,
        )

    raise UnrecognizedPayloadError(PROVIDER, f"Unknown event type: {event!r}")


class ChaskisAdapter(HttpProviderAdapter):
    provider = PROVIDER

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        settings: ProviderSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            base_url=base_url,
            headers={"X-Api-Key": api_key, "Content-Type": "application/json"},
            settings=settings,
            client=client,
        )

    @staticmethod
    def _stop(stop) -> dict:
        body = {
            "contact_name": stop.name,
            "contact_phone": stop.phone,
            "address": stop.address,
            "instructions": stop.note,
        }
        return {key: value for key, value in body.items() if value is not None}

    async def quote(self, delivery) -> Quote:
        response = await self._request(
            "POST",
            "/quotes",
            ChaskisDispatchError,
            json={"pickup": self._stop(delivery.pick_up), "dropoff": self._stop(delivery.drop_off)},
        )
        self._raise_for_status(response, ChaskisDispatchError, "Quote rejected")
        body = response.json()
        price = body.get("price") or {}
        return Quote(
            amount=float(price.get("amount", 0.0)),
            currency=price.get("currency", "PEN"),
            eta_minutes=body.get("eta_minutes"),
        )

    async def dispatch(self, delivery) -> DispatchResult:
        response = await self._request(
            "POST",
            "/deliveries",
            ChaskisDispatchError,
            json={
                "external_id": str(delivery.id),
                "order_reference": str(delivery.order_id),
                "pickup": self._stop(delivery.pick_up),
                "dropoff": self._stop(delivery.drop_off),
            },
        )
        self._raise_for_status(response, ChaskisDispatchError, "Delivery rejected")
        body = response.json()
        return DispatchResult(
            provider_identifier=str(body["id"]),
            tracking_url=body.get("tracking_url"),
            eta_time=(
                parse_timestamp(body["estimated_dropoff_at"], PROVIDER) if body.get("estimated_dropoff_at") else None
            ),
            collection_code=body.get("pickup_code"),
        )

    async def cancel(self, provider_identifier: str) -> None:
        response = await self._request("POST", f"/deliveries/{provider_identifier}/cancel", CancelError)
        if response.is_success or error_code(response) == "ALREADY_CANCELED":
            return
        self._raise_for_status(response, CancelError, "Cancellation rejected")

    def normalize_webhook(self, payload: dict) -> ProviderUpdate:
        return normalize_chaskis_payload(payload)
