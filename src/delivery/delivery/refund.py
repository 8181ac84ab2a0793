"""Delivery refunds: command and handler.

Only records the refund owed; the payment itself is settled elsewhere.
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery
from delivery.domain import delivery


@delivery.command(part_of="Delivery")
class AttachRefund:
    delivery_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    reason = String(required=True, max_length=500)
    currency = String(max_length=3)


@delivery.command_handler(part_of=Delivery)
class RefundHandler:
    @handle(AttachRefund)
    def attach_refund(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.attach_refund(amount=command.amount, reason=command.reason, currency=command.currency)
        repo.add(dlv)
