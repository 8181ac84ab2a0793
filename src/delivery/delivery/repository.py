"""Repository for the Delivery aggregate."""

from delivery.delivery.delivery import Delivery
from delivery.delivery.lifecycle import DeliveryStatus
from delivery.domain import delivery

# A delivery in one of these states no longer occupies its order
_RELEASED_STATUSES = frozenset({DeliveryStatus.CANCELLED.value, DeliveryStatus.RETURNED.value})


@delivery.repository(part_of=Delivery)
class DeliveryRepository:
    """Lookups beyond identity: by order and by the provider's own reference."""

    def find_for_order(self, order_id: str) -> list[Delivery]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def find_active_for_order(self, order_id: str) -> Delivery | None:
        """The delivery currently bound to an order, if any."""
        for dlv in self.find_for_order(order_id):
            if dlv.status not in _RELEASED_STATUSES:
                return dlv
        return None

    def find_by_provider_identifier(self, provider: str, provider_identifier: str) -> Delivery | None:
        results = self._dao.query.filter(provider=provider, provider_identifier=provider_identifier).all()
        return results.first if results.items else None
