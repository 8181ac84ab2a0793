"""Delivery creation: command and handler.

Creating a delivery resolves its provider first: native-channel orders
get the restaurant's default provider straight away (or fail fast when
none is configured), third-party-channel orders wait for the
restaurant's choice unless one is supplied with the command.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.assignment.resolver import resolve
from delivery.assignment.settings import preference_for
from delivery.delivery.delivery import Delivery, OrderChannel
from delivery.domain import delivery
from delivery.provider import all_providers

logger = structlog.get_logger(__name__)


def _json(value):
    return json.loads(value) if isinstance(value, str) else value


@delivery.command(part_of="Delivery")
class CreateDelivery:
    """Create the delivery for an order."""

    order_id = Identifier(required=True)
    restaurant_id = Identifier()
    channel = String(max_length=20, default=OrderChannel.NATIVE.value)
    provider = String(max_length=20)  # Explicit restaurant choice (third-party channel)
    pick_up = Text(required=True)  # JSON PickUp
    drop_off = Text(required=True)  # JSON DropOff
    fees = Text()  # JSON Fees


@delivery.command_handler(part_of=Delivery)
class CreateDeliveryHandler:
    @handle(CreateDelivery)
    def create_delivery(self, command):
        repo = current_domain.repository_for(Delivery)
        existing = repo.find_active_for_order(command.order_id)
        if existing is not None:
            raise ValidationError({"order_id": [f"Order already has delivery {existing.id} ({existing.status})"]})

        assignment = resolve(
            channel=command.channel or OrderChannel.NATIVE.value,
            preference=preference_for(command.restaurant_id),
            adapters=all_providers(),
            chosen_provider=command.provider,
        )

        dlv = Delivery.create(
            order_id=command.order_id,
            restaurant_id=command.restaurant_id,
            channel=command.channel or OrderChannel.NATIVE.value,
            provider=assignment.provider,
            pick_up=_json(command.pick_up),
            drop_off=_json(command.drop_off),
            fees=_json(command.fees) if command.fees else None,
        )
        repo.add(dlv)
        logger.info(
            "Delivery created",
            delivery_id=str(dlv.id),
            order_id=str(command.order_id),
            provider=assignment.provider,
            deferred=assignment.deferred,
        )
        return str(dlv.id)
