"""Provider adapter registry: pluggable delivery provider integrations.

Provides singleton access to one adapter per provider. Uses FakeProvider
by default; set DELIVERY_PROVIDER_MODE=live to talk to the real APIs with
credentials from the environment.
"""

import os
from datetime import time

from delivery.provider.port import ProviderAdapter, ProviderSettings, ServiceHours

PROVIDERS = ("store", "chaskis", "uberDirect")

_provider_instances: dict[str, ProviderAdapter] = {}


def _env_list(name: str) -> set[str]:
    return {item.strip() for item in os.environ.get(name, "").split(",") if item.strip()}


def _service_hours(provider: str) -> ServiceHours:
    """Read ``<PROVIDER>_SERVICE_HOURS`` as ``HH:MM-HH:MM``; always open when unset."""
    raw = os.environ.get(f"{provider.upper()}_SERVICE_HOURS")
    if not raw:
        return ServiceHours()
    opens_at, closes_at = raw.split("-", 1)
    return ServiceHours(opens_at=time.fromisoformat(opens_at.strip()), closes_at=time.fromisoformat(closes_at.strip()))


def provider_settings(provider: str) -> ProviderSettings:
    return ProviderSettings(
        enabled=provider not in _env_list("DELIVERY_DISABLED_PROVIDERS"),
        skip_tolerant=provider in _env_list("DELIVERY_SKIP_TOLERANT_PROVIDERS"),
        service_hours=_service_hours(provider),
    )


def _build_live(provider: str, settings: ProviderSettings) -> ProviderAdapter:
    if provider == "store":
        from delivery.provider.store import StoreAdapter

        return StoreAdapter(
            flat_fee=float(os.environ.get("STORE_DELIVERY_FEE", "0")),
            eta_minutes=int(os.environ.get("STORE_DELIVERY_ETA_MINUTES", "30")),
            settings=settings,
        )
    if provider == "chaskis":
        from delivery.provider.chaskis import DEFAULT_BASE_URL, ChaskisAdapter

        return ChaskisAdapter(
            api_key=os.environ["CHASKIS_API_KEY"],
            base_url=os.environ.get("CHASKIS_BASE_URL", DEFAULT_BASE_URL),
            settings=settings,
        )
    if provider == "uberDirect":
        from delivery.provider.uber_direct import DEFAULT_BASE_URL, UberDirectAdapter

        return UberDirectAdapter(
            customer_id=os.environ["UBER_DIRECT_CUSTOMER_ID"],
            api_token=os.environ["UBER_DIRECT_API_TOKEN"],
            base_url=os.environ.get("UBER_DIRECT_BASE_URL", DEFAULT_BASE_URL),
            settings=settings,
        )
    raise ValueError(f"Unknown delivery provider: {provider}")


def get_provider(provider: str) -> ProviderAdapter:
    """Return the configured adapter for ``provider`` (singleton per provider)."""
    if provider not in _provider_instances:
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown delivery provider: {provider}")

        mode = os.environ.get("DELIVERY_PROVIDER_MODE", "fake")
        settings = provider_settings(provider)
        if mode == "fake":
            from delivery.provider.fake import FakeProvider

            _provider_instances[provider] = FakeProvider(provider, settings=settings)
        elif mode == "live":
            _provider_instances[provider] = _build_live(provider, settings)
        else:
            raise ValueError(f"Unknown provider mode: {mode}")

    return _provider_instances[provider]


def all_providers() -> dict[str, ProviderAdapter]:
    return {provider: get_provider(provider) for provider in PROVIDERS}


def set_provider(provider: str, adapter: ProviderAdapter) -> None:
    """Override the adapter for one provider (useful for tests)."""
    _provider_instances[provider] = adapter


def reset_providers() -> None:
    """Reset all provider singletons (useful for testing)."""
    _provider_instances.clear()
