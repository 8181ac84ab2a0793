"""Delivery tracking: commands and handler.

Provider webhooks arrive here already normalized into the domain's
vocabulary (see ``delivery.provider``). Manual status changes come from
the restaurant dashboard, typically for in-house couriers.
"""

import json

from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery, StatusSource
from delivery.domain import delivery


@delivery.command(part_of="Delivery")
class ApplyProviderUpdate:
    """Apply one normalized provider webhook to a delivery."""

    delivery_id = Identifier(required=True)
    status = String(max_length=50)
    occurred_at = DateTime()
    courier = Text()  # JSON Courier
    latitude = Float()
    longitude = Float()
    allow_skip = Boolean(default=False)


@delivery.command(part_of="Delivery")
class UpdateDeliveryStatus:
    """Manually move a delivery along its lifecycle."""

    delivery_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    allow_skip = Boolean(default=False)


@delivery.command(part_of="Delivery")
class UpdateCourierLocation:
    delivery_id = Identifier(required=True)
    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)
    recorded_at = DateTime()


@delivery.command_handler(part_of=Delivery)
class TrackingHandler:
    @handle(ApplyProviderUpdate)
    def apply_provider_update(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        courier = json.loads(command.courier) if command.courier else None
        outcome = dlv.record_provider_update(
            status=command.status,
            occurred_at=command.occurred_at,
            courier=courier,
            latitude=command.latitude,
            longitude=command.longitude,
            allow_skip=bool(command.allow_skip),
        )
        repo.add(dlv)
        return outcome.value

    @handle(UpdateDeliveryStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.apply_status(command.status, allow_skip=bool(command.allow_skip), source=StatusSource.MANUAL)
        repo.add(dlv)

    @handle(UpdateCourierLocation)
    def update_courier_location(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        moved = dlv.update_courier_location(
            latitude=command.latitude,
            longitude=command.longitude,
            recorded_at=command.recorded_at,
        )
        repo.add(dlv)
        return moved
