"""Store adapter: the restaurant's own couriers.

No third party is involved: dispatch only mints a local reference and a
collection code, and the staff app reports progress in domain
vocabulary.
"""

import secrets

from delivery.delivery.exceptions import StoreDispatchError, UnrecognizedPayloadError
from delivery.delivery.lifecycle import DeliveryStatus
from delivery.provider.payloads import coordinates, parse_timestamp, require
from delivery.provider.port import DispatchResult, ProviderAdapter, ProviderSettings, ProviderUpdate, Quote

PROVIDER = "store"

_STATUSES = {status.value for status in DeliveryStatus}


def normalize_store_payload(payload: dict) -> ProviderUpdate:
    """Translate a staff app callback into a ``ProviderUpdate``."""
    event = require(payload, "event", PROVIDER)
    delivery_id = require(payload, "delivery_id", PROVIDER)
    occurred_at = parse_timestamp(payload.get("occurred_at"), PROVIDER)
    latitude, longitude = coordinates(payload.get("location"))

    if event == "status":
        status = payload.get("status")
        if status not in _STATUSES:
            raise UnrecognizedPayloadError(PROVIDER, f"Unknown delivery status: {status!r}")
        return ProviderUpdate(
            provider_identifier=str(delivery_id),
            occurred_at=occurred_at,
            status=status,
            courier=payload.get("courier"),
            latitude=latitude,
            longitude=longitude,
            raw_event=f"status:{status}",
        )

    if event == "location":
        if latitude is None:
            raise UnrecognizedPayloadError(PROVIDER, "Location ping without coordinates")
        return ProviderUpdate(
            provider_identifier=str(delivery_id),
            occurred_at=occurred_at,
            latitude=latitude,
            longitude=longitude,
            raw_event="location",
        )

    raise UnrecognizedPayloadError(PROVIDER, f"Unknown event: {event!r}")


class StoreAdapter(ProviderAdapter):
    provider = PROVIDER

    def __init__(self, flat_fee: float = 0.0, eta_minutes: int = 30, settings: ProviderSettings | None = None):
        super().__init__(settings)
        self.flat_fee = flat_fee
        self.eta_minutes = eta_minutes

    async def quote(self, delivery) -> Quote:
        currency = delivery.fees.currency if delivery.fees else "USD"
        return Quote(amount=self.flat_fee, currency=currency, eta_minutes=self.eta_minutes)

    async def dispatch(self, delivery) -> DispatchResult:
        if not self.settings.enabled:
            raise StoreDispatchError(PROVIDER, "In-house delivery is disabled for this restaurant", retryable=False)
        return DispatchResult(
            provider_identifier=f"store-{delivery.id}",
            collection_code=f"{secrets.randbelow(10_000):04d}",
        )

    async def cancel(self, provider_identifier: str) -> None:
        # Nothing to call off outside the restaurant
        return None

    def normalize_webhook(self, payload: dict) -> ProviderUpdate:
        return normalize_store_payload(payload)
