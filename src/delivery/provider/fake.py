"""Fake provider adapter: deterministic provider for testing and development.

Stands in for any provider. Dispatch and cancel calls are recorded in
memory, failures are configurable, and webhooks are normalized with the
real provider's vocabulary so callbacks can be exercised end to end.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from delivery.delivery.exceptions import CancelError, DispatchError
from delivery.provider.chaskis import normalize_chaskis_payload
from delivery.provider.port import DispatchResult, ProviderAdapter, ProviderSettings, ProviderUpdate, Quote
from delivery.provider.store import normalize_store_payload
from delivery.provider.uber_direct import normalize_uber_direct_payload

_NORMALIZERS = {
    "store": normalize_store_payload,
    "chaskis": normalize_chaskis_payload,
    "uberDirect": normalize_uber_direct_payload,
}


class FakeProvider(ProviderAdapter):
    """Fake provider that always succeeds by default."""

    def __init__(self, provider: str, settings: ProviderSettings | None = None):
        super().__init__(settings)
        self.provider = provider
        self.dispatched: list[str] = []
        self.cancelled: list[str] = []
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Provider unavailable",
        retryable: bool = True,
        fail_times: int | None = None,
        accepting: bool = True,
        fee: float = 5.0,
    ):
        """Configure the fake provider behavior for testing.

        ``fail_times`` fails only the first N dispatch attempts, which is
        how retry paths are exercised.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.retryable = retryable
        self.fail_times = fail_times
        self.accepting = accepting
        self.fee = fee
        self.dispatch_calls = 0

    def is_accepting(self, at: datetime) -> bool:
        return self.accepting and super().is_accepting(at)

    async def quote(self, delivery) -> Quote:
        return Quote(amount=self.fee, currency="USD", eta_minutes=25)

    async def dispatch(self, delivery) -> DispatchResult:
        self.dispatch_calls += 1
        failing = not self.should_succeed or (self.fail_times is not None and self.dispatch_calls <= self.fail_times)
        if failing:
            raise DispatchError(self.provider, self.failure_reason, retryable=self.retryable)

        provider_identifier = f"fake-{self.provider}-{uuid4().hex[:8]}"
        self.dispatched.append(str(delivery.id))
        return DispatchResult(
            provider_identifier=provider_identifier,
            tracking_url=f"https://track.example.com/{provider_identifier}",
            eta_time=datetime.now(UTC) + timedelta(minutes=25),
        )

    async def cancel(self, provider_identifier: str) -> None:
        if not self.should_succeed:
            raise CancelError(self.provider, self.failure_reason)
        if provider_identifier not in self.cancelled:
            self.cancelled.append(provider_identifier)

    def normalize_webhook(self, payload: dict) -> ProviderUpdate:
        return _NORMALIZERS[self.provider](payload)

    def reset(self):
        """Clear recorded calls and restore default behavior."""
        self.dispatched.clear()
        self.cancelled.clear()
        self.configure()
