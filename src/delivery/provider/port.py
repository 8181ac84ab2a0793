"""Provider port: abstract interface for delivery provider integrations.

Every provider (the restaurant's own couriers, Chaskis, Uber Direct)
implements this interface. Domain and application code program against
the port; the concrete adapter is picked by the delivery's ``provider``
value through the registry in ``delivery.provider``.

Network-bound operations (quote, dispatch, cancel) are coroutines.
Webhook normalization is a pure translation and stays synchronous.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, time


@dataclass(frozen=True)
class DispatchResult:
    """Provider acknowledgement of a delivery request."""

    provider_identifier: str
    tracking_url: str | None = None
    eta_time: datetime | None = None
    collection_code: str | None = None


@dataclass(frozen=True)
class Quote:
    """Customer-facing delivery estimate."""

    amount: float
    currency: str = "USD"
    eta_minutes: int | None = None


@dataclass(frozen=True)
class ProviderUpdate:
    """A provider callback translated into domain vocabulary.

    ``status`` is a ``DeliveryStatus`` value or None for position-only
    events. ``courier`` uses the Courier value object's keys.
    """

    provider_identifier: str
    occurred_at: datetime
    status: str | None = None
    courier: dict | None = None
    latitude: float | None = None
    longitude: float | None = None
    raw_event: str | None = None


@dataclass(frozen=True)
class ServiceHours:
    """Daily window during which a provider accepts new deliveries."""

    opens_at: time = time(0, 0)
    closes_at: time = time(23, 59, 59)

    def contains(self, at: datetime) -> bool:
        moment = at.time()
        if self.opens_at <= self.closes_at:
            return self.opens_at <= moment <= self.closes_at
        # Window crosses midnight
        return moment >= self.opens_at or moment <= self.closes_at


@dataclass
class ProviderSettings:
    """Operational knobs shared by every adapter."""

    enabled: bool = True
    skip_tolerant: bool = False
    service_hours: ServiceHours = field(default_factory=ServiceHours)


class ProviderAdapter(ABC):
    """Abstract interface for delivery provider adapters."""

    provider: str

    def __init__(self, settings: ProviderSettings | None = None):
        self.settings = settings or ProviderSettings()

    @property
    def skip_tolerant(self) -> bool:
        """Whether this provider may jump lifecycle stages in its callbacks."""
        return self.settings.skip_tolerant

    def is_accepting(self, at: datetime) -> bool:
        """Whether the provider can take new deliveries at ``at``."""
        return self.settings.enabled and self.settings.service_hours.contains(at)

    @abstractmethod
    async def quote(self, delivery) -> Quote:
        """Estimate fee and duration for a delivery before it is dispatched."""
        ...

    @abstractmethod
    async def dispatch(self, delivery) -> DispatchResult:
        """Request a courier for the delivery.

        Raises:
            DispatchError: the provider rejected the request. ``retryable``
                tells the caller whether another attempt may succeed.
        """
        ...

    @abstractmethod
    async def cancel(self, provider_identifier: str) -> None:
        """Cancel a delivery at the provider. Cancelling twice is not an error.

        Raises:
            CancelError: the provider refused the cancellation.
        """
        ...

    @abstractmethod
    def normalize_webhook(self, payload: dict) -> ProviderUpdate:
        """Translate a provider callback into domain vocabulary.

        Raises:
            UnrecognizedPayloadError: unknown event type or status.
        """
        ...
