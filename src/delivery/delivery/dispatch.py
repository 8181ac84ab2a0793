"""Delivery dispatch: commands and handler.

These commands record what the provider answered; the network round-trip
itself (with retries) lives in ``delivery.services.dispatcher``.
"""

from protean import handle
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery
from delivery.domain import delivery


@delivery.command(part_of="Delivery")
class RecordDispatch:
    """Record that the provider accepted the delivery request."""

    delivery_id = Identifier(required=True)
    provider = String(max_length=20)  # provider the request was sent to
    provider_identifier = String(required=True, max_length=255)
    tracking_url = String(max_length=500)
    eta_time = DateTime()
    collection_code = String(max_length=20)


@delivery.command(part_of="Delivery")
class RecordDispatchAttemptFailed:
    delivery_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@delivery.command(part_of="Delivery")
class MarkDispatchFailed:
    """Give up on dispatch after the retry budget is spent."""

    delivery_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@delivery.command(part_of="Delivery")
class QuoteFees:
    delivery_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")


@delivery.command_handler(part_of=Delivery)
class DispatchHandler:
    @handle(RecordDispatch)
    def record_dispatch(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.record_dispatch(
            provider_identifier=command.provider_identifier,
            dispatched_to=command.provider,
            tracking_url=command.tracking_url,
            eta_time=command.eta_time,
            collection_code=command.collection_code,
        )
        repo.add(dlv)

    @handle(RecordDispatchAttemptFailed)
    def record_attempt_failed(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.record_dispatch_attempt_failed(command.reason)
        repo.add(dlv)

    @handle(MarkDispatchFailed)
    def mark_dispatch_failed(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.mark_dispatch_failed(command.reason)
        repo.add(dlv)

    @handle(QuoteFees)
    def quote_fees(self, command):
        repo = current_domain.repository_for(Delivery)
        dlv = repo.get(command.delivery_id)
        dlv.quote_fees(amount=command.amount, currency=command.currency or "USD")
        repo.add(dlv)
