"""Assignment resolver: decides which provider carries a delivery.

Two policies, selected by the order's channel:

* Native channel: the restaurant pre-selects one provider for all native
  orders. The resolver assigns it immediately so it can quote a delivery
  estimate before the customer confirms the order.
* Third-party channel: the external platform already priced delivery, so
  assignment waits until the restaurant explicitly picks its own courier
  or a third-party provider after the order arrives.

The resolver is pure: restaurant configuration comes in as a
``ProviderPreference`` value and availability is read from the adapters
handed in by the caller.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from delivery.delivery.delivery import OrderChannel, channel_value, provider_value
from delivery.delivery.exceptions import NoDefaultProviderConfiguredError, ProviderUnavailableError
from delivery.provider.port import ProviderAdapter


@dataclass(frozen=True)
class ProviderPreference:
    """A restaurant's delivery configuration at the time of the order."""

    restaurant_id: str | None = None
    default_provider: str | None = None


@dataclass(frozen=True)
class Assignment:
    """Outcome of resolution: a provider, or a decision deferred to the restaurant."""

    provider: str | None
    deferred: bool = False


def _ensure_available(provider: str, adapters: Mapping[str, ProviderAdapter], at: datetime) -> None:
    provider = provider_value(provider)
    adapter = adapters.get(provider)
    if adapter is None:
        raise ProviderUnavailableError(f"Provider {provider} is not configured")
    if not adapter.is_accepting(at):
        raise ProviderUnavailableError(f"Provider {provider} is not accepting new deliveries")


def resolve_native(
    preference: ProviderPreference,
    adapters: Mapping[str, ProviderAdapter],
    at: datetime | None = None,
) -> Assignment:
    if not preference.default_provider:
        raise NoDefaultProviderConfiguredError(
            f"Restaurant {preference.restaurant_id} has no default delivery provider for native orders"
        )
    _ensure_available(preference.default_provider, adapters, at or datetime.now(UTC))
    return Assignment(provider=preference.default_provider)


def resolve_third_party(
    chosen_provider: str | None,
    adapters: Mapping[str, ProviderAdapter],
    at: datetime | None = None,
) -> Assignment:
    if not chosen_provider:
        return Assignment(provider=None, deferred=True)
    _ensure_available(chosen_provider, adapters, at or datetime.now(UTC))
    return Assignment(provider=chosen_provider)


def resolve(
    channel: str,
    preference: ProviderPreference,
    adapters: Mapping[str, ProviderAdapter],
    chosen_provider: str | None = None,
    at: datetime | None = None,
) -> Assignment:
    """Pick the provider for a new delivery according to its order channel."""
    if channel_value(channel) == OrderChannel.NATIVE.value:
        return resolve_native(preference, adapters, at)
    return resolve_third_party(chosen_provider, adapters, at)
