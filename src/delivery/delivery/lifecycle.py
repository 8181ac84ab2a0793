"""Delivery status transition engine.

State Machine:
    PENDING → PICKUP → PICKUP_IMMINENT → PICKUP_COMPLETE → DROPOFF → DROPOFF_IMMINENT → DELIVERED
    {any non-terminal} → CANCELLED
    {PICKUP .. DROPOFF_IMMINENT} → RETURNED

Providers that do not emit every intermediate event can be marked skip
tolerant, in which case any forward jump along the main path is accepted
(e.g. PICKUP → DELIVERED).
"""

from enum import Enum

from delivery.delivery.exceptions import InvalidTransitionError, TerminalStateError


class DeliveryStatus(Enum):
    PENDING = "pending"
    PICKUP = "pickup"
    PICKUP_IMMINENT = "pickup_imminent"
    PICKUP_COMPLETE = "pickup_complete"
    DROPOFF = "dropoff"
    DROPOFF_IMMINENT = "dropoff_imminent"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


# Main path, in order
PROGRESSION = (
    DeliveryStatus.PENDING,
    DeliveryStatus.PICKUP,
    DeliveryStatus.PICKUP_IMMINENT,
    DeliveryStatus.PICKUP_COMPLETE,
    DeliveryStatus.DROPOFF,
    DeliveryStatus.DROPOFF_IMMINENT,
    DeliveryStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.RETURNED})

# Courier is on the road
ACTIVE_STATUSES = frozenset(
    {
        DeliveryStatus.PICKUP,
        DeliveryStatus.PICKUP_IMMINENT,
        DeliveryStatus.PICKUP_COMPLETE,
        DeliveryStatus.DROPOFF,
        DeliveryStatus.DROPOFF_IMMINENT,
    }
)

# Live courier location is only meaningful while travelling to a stop
LOCATION_TRACKED_STATUSES = frozenset(
    {
        DeliveryStatus.PICKUP,
        DeliveryStatus.PICKUP_IMMINENT,
        DeliveryStatus.DROPOFF,
        DeliveryStatus.DROPOFF_IMMINENT,
    }
)

REFUNDABLE_STATUSES = frozenset({DeliveryStatus.CANCELLED, DeliveryStatus.RETURNED})


def _build_transitions() -> dict[DeliveryStatus, frozenset[DeliveryStatus]]:
    transitions: dict[DeliveryStatus, set[DeliveryStatus]] = {status: set() for status in DeliveryStatus}
    for current, following in zip(PROGRESSION, PROGRESSION[1:]):
        transitions[current].add(following)
    for status in DeliveryStatus:
        if status not in TERMINAL_STATUSES:
            transitions[status].add(DeliveryStatus.CANCELLED)
    for status in ACTIVE_STATUSES:
        transitions[status].add(DeliveryStatus.RETURNED)
    return {status: frozenset(targets) for status, targets in transitions.items()}


VALID_TRANSITIONS = _build_transitions()


def is_terminal(status: DeliveryStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_forward_skip(current: DeliveryStatus, requested: DeliveryStatus) -> bool:
    """True when ``requested`` lies further along the main path than ``current``."""
    if current not in PROGRESSION or requested not in PROGRESSION:
        return False
    return PROGRESSION.index(requested) > PROGRESSION.index(current)


def can_transition(current: DeliveryStatus, requested: DeliveryStatus, allow_skip: bool = False) -> bool:
    if requested in VALID_TRANSITIONS[current]:
        return True
    return allow_skip and is_forward_skip(current, requested)


def transition(current: DeliveryStatus, requested: DeliveryStatus, allow_skip: bool = False) -> DeliveryStatus:
    """Validate a status change and return the new status.

    Raises:
        TerminalStateError: ``current`` is delivered, cancelled or returned.
        InvalidTransitionError: ``requested`` is not reachable from ``current``.
    """
    current = DeliveryStatus(current)
    requested = DeliveryStatus(requested)

    if is_terminal(current):
        raise TerminalStateError(
            {"status": [f"Delivery is {current.value} and accepts no further status changes"]}
        )
    if not can_transition(current, requested, allow_skip=allow_skip):
        raise InvalidTransitionError({"status": [f"Cannot transition from {current.value} to {requested.value}"]})
    return requested
