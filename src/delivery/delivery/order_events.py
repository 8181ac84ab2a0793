"""Inbound cross-domain event handler: Delivery reacts to Ordering events.

Listens for OrderCancelled events from the Ordering domain to call off the
order's active delivery. Cancellation is best effort: once the courier has
collected the food the delivery is left to the provider's return flow.

Cross-domain events are imported from shared.events module and registered
as external events via delivery.register_external_event().
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle
from shared.events.ordering import OrderCancelled

from delivery.delivery.delivery import RESTAURANT_CANCELLABLE_STATUSES, Delivery
from delivery.delivery.exceptions import ProviderError
from delivery.domain import delivery
from delivery.services.background import run_coroutine
from delivery.services.dispatcher import DeliveryDispatcher

logger = structlog.get_logger(__name__)

# Register external events so Protean can deserialize them
delivery.register_external_event(OrderCancelled, "Ordering.OrderCancelled.v1")


@delivery.event_handler(part_of=Delivery, stream_category="ordering::order")
class OrderEventHandler:
    """Reacts to events from the Ordering domain."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        """Cancel the active delivery when its order is cancelled."""
        repo = current_domain.repository_for(Delivery)
        dlv = repo.find_active_for_order(str(event.order_id))
        if dlv is None:
            logger.info("No active delivery for cancelled order", order_id=str(event.order_id))
            return

        if dlv.current_status not in RESTAURANT_CANCELLABLE_STATUSES:
            logger.warning(
                "Cannot cancel delivery, courier already has the order",
                delivery_id=str(dlv.id),
                order_id=str(event.order_id),
                status=dlv.status,
            )
            return

        delivery_id = str(dlv.id)
        logger.info("Cancelling delivery for cancelled order", delivery_id=delivery_id, order_id=str(event.order_id))
        # Provider first, then the domain; a provider refusal leaves the delivery active
        try:
            run_coroutine(
                DeliveryDispatcher().cancel(delivery_id, reason=f"Order cancelled: {event.reason}"),
                description=f"cancel delivery {delivery_id}",
            )
        except ProviderError as exc:
            logger.error(
                "Provider refused cancellation",
                delivery_id=delivery_id,
                provider=dlv.provider,
                error=exc.message,
            )
