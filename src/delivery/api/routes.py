"""FastAPI routes for the Delivery domain."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from delivery.api.schemas import (
    AssignProviderRequest,
    AttachRefundRequest,
    CancelDeliveryRequest,
    ConfigureDeliverySettingsRequest,
    CourierLocationRequest,
    CourierRequest,
    CourierResponse,
    CreateDeliveryRequest,
    DeliveryIdResponse,
    DeliveryResponse,
    DeliverySettingsResponse,
    FeesRequest,
    FeesResponse,
    QuoteResponse,
    RefundResponse,
    StatusResponse,
    StopRequest,
    StopResponse,
    UpdateStatusRequest,
    WebhookResponse,
)
from delivery.assignment.settings import ConfigureDeliverySettings, preference_for
from delivery.delivery.assignment import AmendDropOff, AssignCourier, AssignProvider
from delivery.delivery.creation import CreateDelivery
from delivery.delivery.delivery import Delivery
from delivery.delivery.dispatch import QuoteFees
from delivery.delivery.refund import AttachRefund
from delivery.delivery.tracking import UpdateCourierLocation, UpdateDeliveryStatus
from delivery.services.dispatcher import DeliveryDispatcher
from delivery.services.locks import process_locked
from delivery.services.webhooks import IGNORED, WebhookProcessor


def _model(schema, value_object):
    if value_object is None:
        return None
    return schema(**{name: getattr(value_object, name) for name in schema.model_fields})


def _delivery_response(dlv: Delivery) -> DeliveryResponse:
    return DeliveryResponse(
        delivery_id=str(dlv.id),
        order_id=str(dlv.order_id),
        restaurant_id=str(dlv.restaurant_id) if dlv.restaurant_id else None,
        channel=dlv.channel,
        provider=dlv.provider,
        provider_identifier=dlv.provider_identifier,
        status=dlv.status,
        pick_up=_model(StopResponse, dlv.pick_up),
        drop_off=_model(StopResponse, dlv.drop_off),
        courier=_model(CourierResponse, dlv.courier),
        tracking_url=dlv.tracking_url,
        fees=_model(FeesResponse, dlv.fees),
        collection_code=dlv.collection_code,
        refund=_model(RefundResponse, dlv.refund),
        dispatch_attempts=dlv.dispatch_attempts or 0,
        cancellation_reason=dlv.cancellation_reason,
        failure_reason=dlv.failure_reason,
        created_at=dlv.created_at,
        updated_at=dlv.updated_at,
    )


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@delivery_router.post("", status_code=201, response_model=DeliveryIdResponse)
async def create_delivery(body: CreateDeliveryRequest) -> DeliveryIdResponse:
    """Create the delivery for an order, resolving its provider by channel."""
    command = CreateDelivery(
        order_id=body.order_id,
        restaurant_id=body.restaurant_id,
        channel=body.channel,
        provider=body.provider,
        pick_up=body.pick_up.model_dump_json(exclude_none=True),
        drop_off=body.drop_off.model_dump_json(exclude_none=True),
        fees=body.fees.model_dump_json() if body.fees else None,
    )
    result = current_domain.process(command, asynchronous=False)
    return DeliveryIdResponse(delivery_id=result)


@delivery_router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(delivery_id: str) -> DeliveryResponse:
    dlv = current_domain.repository_for(Delivery).get(delivery_id)
    return _delivery_response(dlv)


@delivery_router.put("/{delivery_id}/provider", response_model=StatusResponse)
async def assign_provider(delivery_id: str, body: AssignProviderRequest) -> StatusResponse:
    """Bind a third-party-channel delivery to the provider the restaurant picked."""
    command = AssignProvider(
        delivery_id=delivery_id,
        provider=body.provider,
        provider_identifier=body.provider_identifier,
    )
    await process_locked(command)
    return StatusResponse(status="provider_assigned")


@delivery_router.put("/{delivery_id}/drop-off", response_model=StatusResponse)
async def amend_drop_off(delivery_id: str, body: StopRequest) -> StatusResponse:
    command = AmendDropOff(delivery_id=delivery_id, drop_off=body.model_dump_json(exclude_none=True))
    await process_locked(command)
    return StatusResponse(status="drop_off_amended")


@delivery_router.post("/{delivery_id}/dispatch", response_model=DeliveryResponse)
async def dispatch_delivery(delivery_id: str) -> DeliveryResponse:
    """Send the delivery to its provider, retrying transient failures."""
    dlv = await DeliveryDispatcher().dispatch(delivery_id)
    return _delivery_response(dlv)


@delivery_router.post("/{delivery_id}/estimate", response_model=QuoteResponse)
async def estimate_delivery(delivery_id: str) -> QuoteResponse:
    """Ask the assigned provider for a quote and record it as the delivery fees."""
    quote = await DeliveryDispatcher().estimate(delivery_id)
    return QuoteResponse(amount=quote.amount, currency=quote.currency, eta_minutes=quote.eta_minutes)


@delivery_router.put("/{delivery_id}/status", response_model=StatusResponse)
async def update_status(delivery_id: str, body: UpdateStatusRequest) -> StatusResponse:
    """Manual status change, used for the restaurant's own couriers."""
    command = UpdateDeliveryStatus(
        delivery_id=delivery_id,
        status=body.status,
        allow_skip=body.allow_skip,
    )
    await process_locked(command)
    return StatusResponse(status=body.status)


@delivery_router.put("/{delivery_id}/courier", response_model=StatusResponse)
async def assign_courier(delivery_id: str, body: CourierRequest) -> StatusResponse:
    command = AssignCourier(delivery_id=delivery_id, courier=body.model_dump_json(exclude_none=True))
    await process_locked(command)
    return StatusResponse(status="courier_assigned")


@delivery_router.put("/{delivery_id}/courier/location", response_model=StatusResponse)
async def update_courier_location(delivery_id: str, body: CourierLocationRequest) -> StatusResponse:
    command = UpdateCourierLocation(
        delivery_id=delivery_id,
        latitude=body.latitude,
        longitude=body.longitude,
        recorded_at=body.recorded_at,
    )
    moved = await process_locked(command)
    return StatusResponse(status="location_updated" if moved else "location_stale")


@delivery_router.put("/{delivery_id}/fees", response_model=StatusResponse)
async def quote_fees(delivery_id: str, body: FeesRequest) -> StatusResponse:
    command = QuoteFees(delivery_id=delivery_id, amount=body.amount, currency=body.currency)
    await process_locked(command)
    return StatusResponse(status="fees_quoted")


@delivery_router.put("/{delivery_id}/cancel", response_model=DeliveryResponse)
async def cancel_delivery(delivery_id: str, body: CancelDeliveryRequest) -> DeliveryResponse:
    """Cancel before pickup; dispatched deliveries are cancelled at the provider first."""
    dlv = await DeliveryDispatcher().cancel(delivery_id, reason=body.reason)
    return _delivery_response(dlv)


@delivery_router.put("/{delivery_id}/refund", response_model=StatusResponse)
async def attach_refund(delivery_id: str, body: AttachRefundRequest) -> StatusResponse:
    command = AttachRefund(
        delivery_id=delivery_id,
        amount=body.amount,
        reason=body.reason,
        currency=body.currency,
    )
    await process_locked(command)
    return StatusResponse(status="refund_attached")


@delivery_router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def provider_webhook(provider: str, payload: dict) -> JSONResponse:
    """Apply a provider callback. Unrecognized payloads are accepted and dropped."""
    result = await WebhookProcessor().process(provider, payload)
    status_code = 202 if result.status == IGNORED else 200
    return JSONResponse(
        status_code=status_code,
        content=WebhookResponse(status=result.status, delivery_id=result.delivery_id).model_dump(),
    )


# ---------------------------------------------------------------------------
# Delivery Settings Router
# ---------------------------------------------------------------------------
settings_router = APIRouter(prefix="/delivery-settings", tags=["delivery-settings"])


@settings_router.put("/{restaurant_id}", response_model=DeliverySettingsResponse)
async def configure_settings(restaurant_id: str, body: ConfigureDeliverySettingsRequest) -> DeliverySettingsResponse:
    """Set the provider used for the restaurant's native-channel orders."""
    command = ConfigureDeliverySettings(restaurant_id=restaurant_id, default_provider=body.default_provider)
    current_domain.process(command, asynchronous=False)
    return DeliverySettingsResponse(restaurant_id=restaurant_id, default_provider=body.default_provider)


@settings_router.get("/{restaurant_id}", response_model=DeliverySettingsResponse)
async def get_settings(restaurant_id: str) -> DeliverySettingsResponse:
    preference = preference_for(restaurant_id)
    return DeliverySettingsResponse(restaurant_id=restaurant_id, default_provider=preference.default_provider)
