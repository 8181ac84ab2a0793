"""Delivery status: status board for the restaurant dashboard."""

from protean.core.projector import on
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery
from delivery.delivery.events import (
    CourierAssigned,
    DeliveryCreated,
    DeliveryDispatched,
    DeliveryDispatchFailed,
    DeliveryStatusChanged,
    ProviderAssigned,
)
from delivery.domain import delivery


@delivery.projection
class DeliveryStatusView:
    delivery_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    restaurant_id = Identifier()
    provider = String()
    status = String(required=True)
    courier_name = String()
    tracking_url = String()
    eta_time = DateTime()
    dispatch_attempts = Integer(default=0)
    failure_reason = String()
    created_at = DateTime()
    updated_at = DateTime()


@delivery.projector(projector_for=DeliveryStatusView, aggregates=[Delivery])
class DeliveryStatusProjector:
    @on(DeliveryCreated)
    def on_delivery_created(self, event):
        current_domain.repository_for(DeliveryStatusView).add(
            DeliveryStatusView(
                delivery_id=event.delivery_id,
                order_id=event.order_id,
                restaurant_id=event.restaurant_id,
                provider=event.provider or None,
                status="pending",
                created_at=event.created_at,
                updated_at=event.created_at,
            )
        )

    @on(ProviderAssigned)
    def on_provider_assigned(self, event):
        repo = current_domain.repository_for(DeliveryStatusView)
        view = repo.get(event.delivery_id)
        view.provider = event.provider
        view.updated_at = event.assigned_at
        repo.add(view)

    @on(DeliveryDispatched)
    def on_delivery_dispatched(self, event):
        repo = current_domain.repository_for(DeliveryStatusView)
        view = repo.get(event.delivery_id)
        view.tracking_url = event.tracking_url
        view.eta_time = event.eta_time
        view.dispatch_attempts = event.attempts
        view.updated_at = event.dispatched_at
        repo.add(view)

    @on(DeliveryDispatchFailed)
    def on_dispatch_failed(self, event):
        repo = current_domain.repository_for(DeliveryStatusView)
        view = repo.get(event.delivery_id)
        view.dispatch_attempts = event.attempts
        view.failure_reason = event.reason
        view.updated_at = event.failed_at
        repo.add(view)

    @on(DeliveryStatusChanged)
    def on_status_changed(self, event):
        repo = current_domain.repository_for(DeliveryStatusView)
        view = repo.get(event.delivery_id)
        view.status = event.status
        view.updated_at = event.occurred_at
        repo.add(view)

    @on(CourierAssigned)
    def on_courier_assigned(self, event):
        repo = current_domain.repository_for(DeliveryStatusView)
        view = repo.get(event.delivery_id)
        view.courier_name = event.name
        view.updated_at = event.assigned_at
        repo.add(view)
