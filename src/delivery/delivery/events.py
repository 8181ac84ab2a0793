"""Delivery domain events: immutable facts about delivery state changes.

All events are past tense, versioned, and carry enough data for the
projectors and for downstream consumers (order status, chatbot event
webhook) to act without loading the aggregate.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from delivery.domain import delivery


@delivery.event(part_of="Delivery")
class DeliveryCreated:
    """A delivery was created for an order."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    restaurant_id = Identifier()
    channel = String(required=True)
    provider = String()
    drop_off_address = String(required=True)
    created_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class ProviderAssigned:
    """A delivery provider was bound to the delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_identifier = String()
    assigned_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryFeesQuoted:
    """Delivery fees were (re)calculated before dispatch."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    quoted_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryDispatched:
    """The provider accepted the delivery request."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_identifier = String(required=True)
    tracking_url = String()
    eta_time = DateTime()
    attempts = Integer(required=True)
    dispatched_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DispatchAttemptFailed:
    """A single dispatch attempt was rejected by the provider."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    provider = String(required=True)
    attempt = Integer(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryDispatchFailed:
    """Dispatch retries were exhausted; the restaurant must fall back manually."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    attempts = Integer(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryStatusChanged:
    """The delivery moved to a new lifecycle status."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String()
    previous_status = String(required=True)
    status = String(required=True)
    occurred_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class CourierAssigned:
    """A named courier was assigned to the delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    courier_id = String(required=True)
    name = String(required=True)
    phone = String()
    image_url = String()
    assigned_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class CourierLocationUpdated:
    """The courier reported a new position."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    courier_id = String()
    latitude = Float(required=True)
    longitude = Float(required=True)
    recorded_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class DeliveryCancelled:
    """The delivery was cancelled by the restaurant, the customer or the system."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String()
    provider_identifier = String()
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@delivery.event(part_of="Delivery")
class RefundAttached:
    """A refund was recorded against a failed or cancelled delivery."""

    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)
