"""Delivery assignment: commands and handler.

Binds a deferred (third-party channel) delivery to the provider the
restaurant picked, records the courier for in-house deliveries and
lets the restaurant correct the drop-off before dispatch.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.assignment.resolver import resolve_third_party
from delivery.delivery.delivery import Delivery
from delivery.domain import delivery
from delivery.provider import all_providers


@delivery.command(part_of="Delivery")
class AssignProvider:
    """Bind a pending delivery to a provider."""

    delivery_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    provider_identifier = String(max_length=255)


@delivery.command(part_of="Delivery")
class AssignCourier:
    """Record the named courier carrying the order."""

    delivery_id = Identifier(required=True)
    courier = Text(required=True)  # JSON Courier


@delivery.command(part_of="Delivery")
class AmendDropOff:
    """Replace the drop-off stop before the provider accepts the delivery."""

    delivery_id = Identifier(required=True)
    drop_off = Text(required=True)  # JSON DropOff


@delivery.command_handler(part_of=Delivery)
class AssignmentHandler:
    @handle(AssignProvider)
    def assign_provider(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        if dlv.provider != command.provider:
            # Only a change of provider needs the chosen one to be taking work
            resolve_third_party(command.provider, all_providers())
        dlv.assign_provider(command.provider, command.provider_identifier)
        repo.add(dlv)

    @handle(AssignCourier)
    def assign_courier(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        courier = json.loads(command.courier) if isinstance(command.courier, str) else command.courier
        dlv.assign_courier(courier)
        repo.add(dlv)

    @handle(AmendDropOff)
    def amend_drop_off(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        drop_off = json.loads(command.drop_off) if isinstance(command.drop_off, str) else command.drop_off
        dlv.amend_drop_off(drop_off)
        repo.add(dlv)
