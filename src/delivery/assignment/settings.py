"""Restaurant delivery settings: aggregate, command and handler.

Holds the provider a restaurant pre-selected for native-channel orders.
Callers turn it into a ``ProviderPreference`` before asking the resolver,
so the resolver never reads persisted state itself.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from delivery.assignment.resolver import ProviderPreference
from delivery.delivery.delivery import DeliveryProvider, provider_value
from delivery.domain import delivery


@delivery.event(part_of="DeliverySettings")
class DefaultProviderConfigured:
    """A restaurant changed the provider used for its native orders."""

    __version__ = 1

    restaurant_id = Identifier(required=True)
    default_provider = String()
    configured_at = DateTime(required=True)


@delivery.aggregate
class DeliverySettings:
    restaurant_id = Identifier(identifier=True, required=True)
    default_provider = String(max_length=20, choices=DeliveryProvider)
    updated_at = DateTime()

    def configure_default_provider(self, provider: str | None) -> None:
        now = datetime.now(UTC)
        self.default_provider = provider_value(provider) if provider else None
        self.updated_at = now
        self.raise_(
            DefaultProviderConfigured(
                restaurant_id=str(self.restaurant_id),
                default_provider=self.default_provider or "",
                configured_at=now,
            )
        )

    def preference(self) -> ProviderPreference:
        return ProviderPreference(restaurant_id=str(self.restaurant_id), default_provider=self.default_provider)


def preference_for(restaurant_id: str | None) -> ProviderPreference:
    """Load a restaurant's preference; restaurants that never configured one get an empty preference."""
    if not restaurant_id:
        return ProviderPreference()
    try:
        settings = current_domain.repository_for(DeliverySettings).get(restaurant_id)
    except ObjectNotFoundError:
        return ProviderPreference(restaurant_id=restaurant_id)
    return settings.preference()


@delivery.command(part_of="DeliverySettings")
class ConfigureDeliverySettings:
    """Set (or clear) the default provider for a restaurant's native orders."""

    restaurant_id = Identifier(required=True)
    default_provider = String(max_length=20)


@delivery.command_handler(part_of=DeliverySettings)
class DeliverySettingsHandler:
    @handle(ConfigureDeliverySettings)
    def configure(self, command):
        repo = current_domain.repository_for(DeliverySettings)
        try:
            settings = repo.get(command.restaurant_id)
        except ObjectNotFoundError:
            settings = DeliverySettings(restaurant_id=command.restaurant_id)
        settings.configure_default_provider(command.default_provider)
        repo.add(settings)
        return str(settings.restaurant_id)
