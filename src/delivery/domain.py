"""Delivery bounded context: delivery lifecycle and provider assignment.

Owns the Delivery aggregate for restaurant orders: which provider fulfills
it (in-house courier, Chaskis, Uber Direct), its status lifecycle, and the
translation of provider callbacks into domain status updates. Uses CQRS
because providers own the live tracking state.
"""

from protean.domain import Domain

from delivery.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

delivery = Domain(name="delivery")
