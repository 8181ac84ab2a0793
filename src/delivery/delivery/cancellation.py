"""Delivery cancellation: command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery
from delivery.domain import delivery


@delivery.command(part_of="Delivery")
class CancelDelivery:
    """Cancel a delivery before the courier collects the order."""

    delivery_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@delivery.command_handler(part_of=Delivery)
class CancellationHandler:
    @handle(CancelDelivery)
    def cancel_delivery(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.cancel(reason=command.reason)
        repo.add(dlv)
