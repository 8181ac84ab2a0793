"""Delivery aggregate (CQRS): the core of the delivery domain.

A Delivery binds one restaurant order to the provider that physically
carries it: the restaurant's own courier, Chaskis, or Uber Direct. The
aggregate enforces field-level rules (drop-off address, non-negative fees,
frozen addresses and fees after dispatch) and delegates status changes to
the transition engine in ``delivery.delivery.lifecycle``.

Provider webhooks are not guaranteed to arrive in order, so the aggregate
keeps a ``last_event_at`` watermark: a provider status event older than the
last applied one is stale and ignored. Courier positions follow the same
rule independently via ``courier.location_updated_at``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from delivery.delivery.events import (
    CourierAssigned,
    CourierLocationUpdated,
    DeliveryCancelled,
    DeliveryCreated,
    DeliveryDispatched,
    DeliveryDispatchFailed,
    DeliveryFeesQuoted,
    DeliveryStatusChanged,
    DispatchAttemptFailed,
    ProviderAssigned,
    RefundAttached,
)
from delivery.delivery.exceptions import InvalidStateError, TerminalStateError
from delivery.delivery.lifecycle import (
    LOCATION_TRACKED_STATUSES,
    REFUNDABLE_STATUSES,
    DeliveryStatus,
    is_terminal,
    transition,
)
from delivery.domain import delivery


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DeliveryProvider(Enum):
    STORE = "store"
    CHASKIS = "chaskis"
    UBER_DIRECT = "uberDirect"


class OrderChannel(Enum):
    NATIVE = "native"
    THIRD_PARTY = "third_party"


class StatusSource(Enum):
    PROVIDER = "provider"
    MANUAL = "manual"
    SYSTEM = "system"


class UpdateOutcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    STALE = "stale"


# Once the courier holds the food the restaurant can no longer call it off
RESTAURANT_CANCELLABLE_STATUSES = frozenset(
    {DeliveryStatus.PENDING, DeliveryStatus.PICKUP, DeliveryStatus.PICKUP_IMMINENT}
)

VALID_CURRENCIES = frozenset({"USD", "EUR", "GBP", "CAD", "MXN", "PEN", "COP", "CLP", "BRL", "ARS"})


def provider_value(value: str) -> str:
    try:
        return DeliveryProvider(value).value
    except ValueError:
        raise ValidationError({"provider": [f"Unknown delivery provider: {value}"]}) from None


def channel_value(value: str) -> str:
    try:
        return OrderChannel(value).value
    except ValueError:
        raise ValidationError({"channel": [f"Unknown order channel: {value}"]}) from None


def _status(value: str) -> DeliveryStatus:
    try:
        return DeliveryStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown delivery status: {value}"]}) from None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@delivery.value_object(part_of="Delivery")
class PickUp:
    """Where and when the courier collects the order."""

    name = String(required=True, max_length=200)
    phone = String(max_length=50)
    address = String(required=True, max_length=500)
    note = String(max_length=500)
    ready_time = DateTime()
    eta_time = DateTime()
    deadline_time = DateTime()


@delivery.value_object(part_of="Delivery")
class DropOff:
    """Where and when the courier hands the order to the customer."""

    name = String(required=True, max_length=200)
    phone = String(max_length=50)
    address = String(required=True, max_length=500)
    note = String(max_length=500)
    ready_time = DateTime()
    eta_time = DateTime()
    deadline_time = DateTime()


@delivery.value_object(part_of="Delivery")
class Courier:
    """The individual carrying the order, with their last known position."""

    courier_id = String(required=True, max_length=100)
    name = String(required=True, max_length=200)
    phone = String(max_length=50)
    image_url = String(max_length=500)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)
    location_updated_at = DateTime()


@delivery.value_object(part_of="Delivery")
class Fees:
    """Delivery price charged for the order."""

    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")

    @invariant.post
    def currency_must_be_supported(self):
        if self.currency not in VALID_CURRENCIES:
            raise ValidationError({"currency": [f"Unsupported currency: {self.currency}"]})


@delivery.value_object(part_of="Delivery")
class Refund:
    """Refund owed after a cancelled or returned delivery."""

    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    reason = String(required=True, max_length=500)
    requested_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@delivery.entity(part_of="Delivery")
class StatusChange:
    """Audit record of one lifecycle transition."""

    from_status = String(required=True, max_length=50)
    to_status = String(required=True, max_length=50)
    source = String(max_length=20, choices=StatusSource, default=StatusSource.SYSTEM.value)
    occurred_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@delivery.aggregate
class Delivery:
    order_id = Identifier(required=True)
    restaurant_id = Identifier()
    channel = String(max_length=20, choices=OrderChannel, default=OrderChannel.NATIVE.value)
    provider = String(max_length=20, choices=DeliveryProvider)
    provider_identifier = String(max_length=255)
    status = String(
        max_length=50,
        choices=DeliveryStatus,
        default=DeliveryStatus.PENDING.value,
    )
    pick_up = ValueObject(PickUp)
    drop_off = ValueObject(DropOff)
    courier = ValueObject(Courier)
    tracking_url = String(max_length=500)
    fees = ValueObject(Fees)
    collection_code = String(max_length=20)
    refund = ValueObject(Refund)
    dispatch_attempts = Integer(default=0)
    dispatched_at = DateTime()
    last_event_at = DateTime()
    cancellation_reason = String(max_length=500)
    failure_reason = String(max_length=500)
    status_history = HasMany(StatusChange)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        pick_up: dict,
        drop_off: dict,
        provider: str | None = None,
        restaurant_id: str | None = None,
        channel: str = OrderChannel.NATIVE.value,
        fees: dict | None = None,
    ):
        """Create a pending delivery for an order."""
        if not order_id:
            raise ValidationError({"order_id": ["A delivery must reference an order"]})
        if not drop_off or not drop_off.get("address"):
            raise ValidationError({"drop_off": ["Drop-off address is required"]})
        if not pick_up or not pick_up.get("address"):
            raise ValidationError({"pick_up": ["Pick-up address is required"]})
        if provider is not None:
            provider = provider_value(provider)

        now = datetime.now(UTC)
        fees = fees or {"amount": 0.0}
        dlv = cls(
            order_id=order_id,
            restaurant_id=restaurant_id,
            channel=channel_value(channel),
            provider=provider,
            status=DeliveryStatus.PENDING.value,
            pick_up=PickUp(**pick_up),
            drop_off=DropOff(**drop_off),
            fees=Fees(**fees),
            dispatch_attempts=0,
            created_at=now,
            updated_at=now,
        )
        dlv.raise_(
            DeliveryCreated(
                delivery_id=str(dlv.id),
                order_id=order_id,
                restaurant_id=restaurant_id,
                channel=dlv.channel,
                provider=provider or "",
                drop_off_address=drop_off["address"],
                created_at=now,
            )
        )
        return dlv

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> DeliveryStatus:
        return DeliveryStatus(self.status)

    @property
    def is_dispatched(self) -> bool:
        return self.dispatched_at is not None

    def _assert_not_terminal(self) -> None:
        if is_terminal(self.current_status):
            raise TerminalStateError({"status": [f"Delivery is already {self.status}"]})

    def _assert_not_dispatched(self, what: str) -> None:
        if self.is_dispatched:
            raise InvalidStateError({what: [f"{what} is frozen once dispatch is confirmed"]})

    # -------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------
    def _change_status(
        self,
        target: DeliveryStatus,
        occurred_at: datetime,
        source: StatusSource,
        allow_skip: bool = False,
    ) -> None:
        current = self.current_status
        if current == DeliveryStatus.PENDING and target != DeliveryStatus.CANCELLED and not self.provider:
            raise InvalidStateError({"provider": ["A provider must be assigned before the delivery leaves pending"]})
        transition(current, target, allow_skip=allow_skip)

        now = datetime.now(UTC)
        self.status = target.value
        self.add_status_history(
            StatusChange(
                from_status=current.value,
                to_status=target.value,
                source=source.value,
                occurred_at=occurred_at,
            )
        )
        watermark = _as_utc(self.last_event_at)
        if watermark is None or occurred_at > watermark:
            self.last_event_at = occurred_at
        self.updated_at = now
        self.raise_(
            DeliveryStatusChanged(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider=self.provider or "",
                previous_status=current.value,
                status=target.value,
                occurred_at=occurred_at,
            )
        )

    def apply_status(
        self,
        new_status: str,
        allow_skip: bool = False,
        occurred_at: datetime | None = None,
        source: StatusSource = StatusSource.MANUAL,
    ) -> None:
        """Move the delivery to ``new_status`` along the lifecycle graph."""
        occurred_at = _as_utc(occurred_at) or datetime.now(UTC)
        self._change_status(_status(new_status), occurred_at, source, allow_skip=allow_skip)

    def record_provider_update(
        self,
        status: str | None,
        occurred_at: datetime | None = None,
        courier: dict | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        allow_skip: bool = False,
    ) -> UpdateOutcome:
        """Apply a normalized provider webhook.

        Status events older than the last applied one are stale and leave the
        status untouched; a repeated status is a no-op. Courier details and
        position are still recorded when newer, and a position outside the
        tracked window is dropped silently.
        """
        occurred_at = _as_utc(occurred_at) or datetime.now(UTC)
        watermark = _as_utc(self.last_event_at)

        outcome = UpdateOutcome.UNCHANGED
        if status is not None:
            target = _status(status)
            if watermark is not None and occurred_at < watermark:
                outcome = UpdateOutcome.STALE
            elif target != self.current_status:
                self._change_status(target, occurred_at, StatusSource.PROVIDER, allow_skip=allow_skip)
                outcome = UpdateOutcome.APPLIED

        if courier and courier.get("name") and not is_terminal(self.current_status):
            self.assign_courier(courier)

        if (
            latitude is not None
            and longitude is not None
            and self.courier is not None
            and self.current_status in LOCATION_TRACKED_STATUSES
        ):
            self._move_courier(latitude, longitude, occurred_at)

        return outcome

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def assign_provider(self, provider: str, provider_identifier: str | None = None) -> None:
        """Bind the delivery to a provider while it is still pending."""
        provider = provider_value(provider)
        if self.current_status != DeliveryStatus.PENDING:
            raise InvalidStateError(
                {"provider": [f"Provider cannot be assigned once the delivery is {self.status}"]}
            )

        if self.provider == provider:
            if provider_identifier and not self.provider_identifier:
                self.provider_identifier = provider_identifier
                self.updated_at = datetime.now(UTC)
            return

        if self.is_dispatched:
            raise InvalidStateError(
                {"provider": [f"Delivery was already dispatched to {self.provider}; cancel and recreate it instead"]}
            )

        now = datetime.now(UTC)
        self.provider = provider
        self.provider_identifier = provider_identifier
        self.updated_at = now
        self.raise_(
            ProviderAssigned(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider=provider,
                provider_identifier=provider_identifier,
                assigned_at=now,
            )
        )

    def assign_courier(self, courier: dict) -> None:
        """Record the named individual carrying the order."""
        self._assert_not_terminal()
        if not self.provider:
            raise InvalidStateError({"courier": ["A provider must be assigned before a courier"]})
        if not courier.get("name"):
            raise ValidationError({"courier": ["Courier name is required"]})

        courier_id = str(courier.get("courier_id") or courier["name"])
        same_courier = self.courier is not None and self.courier.courier_id == courier_id
        details = {
            "name": courier["name"],
            "phone": courier.get("phone"),
            "image_url": courier.get("image_url"),
        }
        if same_courier and all(getattr(self.courier, key) == value for key, value in details.items()):
            return

        now = datetime.now(UTC)
        self.courier = Courier(
            courier_id=courier_id,
            latitude=self.courier.latitude if same_courier else None,
            longitude=self.courier.longitude if same_courier else None,
            location_updated_at=self.courier.location_updated_at if same_courier else None,
            **details,
        )
        self.updated_at = now
        self.raise_(
            CourierAssigned(
                delivery_id=str(self.id),
                courier_id=courier_id,
                name=courier["name"],
                phone=courier.get("phone"),
                image_url=courier.get("image_url"),
                assigned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Courier location
    # -------------------------------------------------------------------
    def _move_courier(self, latitude: float, longitude: float, recorded_at: datetime) -> bool:
        last_seen = _as_utc(self.courier.location_updated_at)
        if last_seen is not None and recorded_at <= last_seen:
            return False

        self.courier = Courier(
            courier_id=self.courier.courier_id,
            name=self.courier.name,
            phone=self.courier.phone,
            image_url=self.courier.image_url,
            latitude=latitude,
            longitude=longitude,
            location_updated_at=recorded_at,
        )
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CourierLocationUpdated(
                delivery_id=str(self.id),
                courier_id=self.courier.courier_id,
                latitude=latitude,
                longitude=longitude,
                recorded_at=recorded_at,
            )
        )
        return True

    def update_courier_location(
        self,
        latitude: float,
        longitude: float,
        recorded_at: datetime | None = None,
    ) -> bool:
        """Record a courier position ping.

        Returns False when the ping is older than the last known position.
        """
        if self.current_status not in LOCATION_TRACKED_STATUSES:
            raise InvalidStateError(
                {"courier": [f"Courier location is not tracked while the delivery is {self.status}"]}
            )
        if self.courier is None:
            raise InvalidStateError({"courier": ["No courier is assigned to this delivery"]})
        return self._move_courier(latitude, longitude, _as_utc(recorded_at) or datetime.now(UTC))

    # -------------------------------------------------------------------
    # Pricing and addresses
    # -------------------------------------------------------------------
    def quote_fees(self, amount: float, currency: str = "USD") -> None:
        """Recalculate delivery fees; only allowed before dispatch."""
        self._assert_not_terminal()
        self._assert_not_dispatched("fees")

        now = datetime.now(UTC)
        self.fees = Fees(amount=amount, currency=currency)
        self.updated_at = now
        self.raise_(
            DeliveryFeesQuoted(
                delivery_id=str(self.id),
                amount=amount,
                currency=currency,
                quoted_at=now,
            )
        )

    def amend_drop_off(self, drop_off: dict) -> None:
        """Replace the drop-off details before the provider has accepted the delivery."""
        self._assert_not_terminal()
        self._assert_not_dispatched("drop_off")
        if not drop_off.get("address"):
            raise ValidationError({"drop_off": ["Drop-off address is required"]})

        self.drop_off = DropOff(**drop_off)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def record_dispatch(
        self,
        provider_identifier: str,
        tracking_url: str | None = None,
        eta_time: datetime | None = None,
        collection_code: str | None = None,
        dispatched_to: str | None = None,
    ) -> None:
        """Record that the provider accepted the delivery request.

        ``dispatched_to`` names the provider that answered; it must still be
        the delivery's provider.
        """
        if not self.provider:
            raise InvalidStateError({"provider": ["Cannot dispatch a delivery without a provider"]})
        if dispatched_to is not None and dispatched_to != self.provider:
            raise InvalidStateError(
                {"provider": [f"Dispatch answered by {dispatched_to} but the delivery is assigned to {self.provider}"]}
            )
        if self.current_status != DeliveryStatus.PENDING:
            raise InvalidStateError({"status": [f"Cannot dispatch a delivery that is {self.status}"]})
        self._assert_not_dispatched("dispatch")

        now = datetime.now(UTC)
        self.provider_identifier = provider_identifier
        self.tracking_url = tracking_url
        self.collection_code = collection_code
        self.dispatch_attempts = (self.dispatch_attempts or 0) + 1
        self.dispatched_at = now
        if eta_time is not None:
            self.drop_off = DropOff(
                name=self.drop_off.name,
                phone=self.drop_off.phone,
                address=self.drop_off.address,
                note=self.drop_off.note,
                ready_time=self.drop_off.ready_time,
                eta_time=eta_time,
                deadline_time=self.drop_off.deadline_time,
            )
        self.updated_at = now
        self.raise_(
            DeliveryDispatched(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider=self.provider,
                provider_identifier=provider_identifier,
                tracking_url=tracking_url,
                eta_time=eta_time,
                attempts=self.dispatch_attempts,
                dispatched_at=now,
            )
        )

    def record_dispatch_attempt_failed(self, reason: str) -> None:
        """Count a rejected dispatch attempt."""
        if self.current_status != DeliveryStatus.PENDING:
            raise InvalidStateError({"status": [f"Cannot dispatch a delivery that is {self.status}"]})

        now = datetime.now(UTC)
        self.dispatch_attempts = (self.dispatch_attempts or 0) + 1
        self.updated_at = now
        self.raise_(
            DispatchAttemptFailed(
                delivery_id=str(self.id),
                provider=self.provider or "",
                attempt=self.dispatch_attempts,
                reason=reason,
                failed_at=now,
            )
        )

    def mark_dispatch_failed(self, reason: str) -> None:
        """Give up on dispatch after retries so the restaurant sees actionable state."""
        now = datetime.now(UTC)
        self._change_status(DeliveryStatus.CANCELLED, now, StatusSource.SYSTEM)
        self.failure_reason = reason
        self.cancellation_reason = "dispatch_failed"
        self.raise_(
            DeliveryDispatchFailed(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider=self.provider or "",
                attempts=self.dispatch_attempts or 0,
                reason=reason,
                failed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Cancellation and refunds
    # -------------------------------------------------------------------
    def ensure_cancellable(self) -> None:
        """Raise unless the restaurant may still cancel this delivery."""
        self._assert_not_terminal()
        if self.current_status not in RESTAURANT_CANCELLABLE_STATUSES:
            raise InvalidStateError(
                {"status": [f"Delivery is {self.status}; the courier already has the order, request a return instead"]}
            )

    def cancel(self, reason: str) -> None:
        """Cancel the delivery before the courier has collected the order."""
        self.ensure_cancellable()

        now = datetime.now(UTC)
        self._change_status(DeliveryStatus.CANCELLED, now, StatusSource.MANUAL)
        self.cancellation_reason = reason
        self.raise_(
            DeliveryCancelled(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                provider=self.provider or "",
                provider_identifier=self.provider_identifier,
                reason=reason,
                cancelled_at=now,
            )
        )

    def attach_refund(self, amount: float, reason: str, currency: str | None = None) -> None:
        """Record the refund owed for a cancelled or returned delivery."""
        if self.current_status not in REFUNDABLE_STATUSES:
            raise InvalidStateError(
                {"refund": [f"Refunds can only be attached to cancelled or returned deliveries, not {self.status}"]}
            )
        if self.refund is not None:
            raise InvalidStateError({"refund": ["A refund is already attached to this delivery"]})

        now = datetime.now(UTC)
        currency = currency or (self.fees.currency if self.fees else "USD")
        self.refund = Refund(amount=amount, currency=currency, reason=reason, requested_at=now)
        self.updated_at = now
        self.raise_(
            RefundAttached(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                amount=amount,
                currency=currency,
                reason=reason,
                requested_at=now,
            )
        )
