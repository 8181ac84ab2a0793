"""Cross-domain event contracts for Ordering domain events.

These classes define the event shape the Delivery domain consumes from
the Ordering domain. They are registered as external events via
domain.register_external_event() with matching __type__ strings so
Protean's stream deserialization works correctly.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, String


class OrderCancelled(BaseEvent):
    """An order was cancelled by the customer or the restaurant."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)
