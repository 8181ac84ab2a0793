"""Courier location: latest courier position per delivery for customer tracking.

The aggregate only keeps the latest position; fan-out to the customer's
tracking page reads from here.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery
from delivery.delivery.events import CourierAssigned, CourierLocationUpdated
from delivery.domain import delivery


@delivery.projection
class CourierLocationView:
    delivery_id = Identifier(identifier=True, required=True)
    courier_id = String()
    courier_name = String()
    latitude = Float()
    longitude = Float()
    recorded_at = DateTime()


@delivery.projector(projector_for=CourierLocationView, aggregates=[Delivery])
class CourierLocationProjector:
    def _view(self, delivery_id):
        repo = current_domain.repository_for(CourierLocationView)
        try:
            return repo, repo.get(delivery_id)
        except ObjectNotFoundError:
            return repo, CourierLocationView(delivery_id=delivery_id)

    @on(CourierAssigned)
    def on_courier_assigned(self, event):
        repo, view = self._view(event.delivery_id)
        if view.courier_id != event.courier_id:
            view.latitude = None
            view.longitude = None
            view.recorded_at = None
        view.courier_id = event.courier_id
        view.courier_name = event.name
        repo.add(view)

    @on(CourierLocationUpdated)
    def on_courier_location_updated(self, event):
        repo, view = self._view(event.delivery_id)
        view.courier_id = event.courier_id
        view.latitude = event.latitude
        view.longitude = event.longitude
        view.recorded_at = event.recorded_at
        repo.add(view)
