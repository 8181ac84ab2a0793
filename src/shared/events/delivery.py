"""Cross-domain event contracts for Delivery domain events.

These classes define the event shape for consumption by other domains
(e.g., Ordering closing an order once its delivery completes, or
Notifications telling the customer the courier is close). They are
registered as external events via domain.register_external_event() with
matching __type__ strings so Protean's stream deserialization works
correctly.

The source-of-truth events are in src/delivery/delivery/events.py.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String


class DeliveryDispatched(BaseEvent):
    """The provider accepted the delivery request."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_identifier = String(required=True)
    tracking_url = String()
    eta_time = DateTime()
    dispatched_at = DateTime(required=True)


class DeliveryStatusChanged(BaseEvent):
    """The delivery moved to a new lifecycle status."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String()
    previous_status = String(required=True)
    status = String(required=True)
    occurred_at = DateTime(required=True)


class DeliveryCancelled(BaseEvent):
    """The restaurant called off the delivery before pickup."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String()
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


class RefundAttached(BaseEvent):
    """A refund is owed for a cancelled or returned delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(default="USD")
    reason = String(required=True)
    requested_at = DateTime(required=True)
