"""Pydantic API schemas for the Delivery domain.

These are the external API contracts, separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class StopRequest(BaseModel):
    name: str
    address: str
    phone: str | None = None
    note: str | None = None
    ready_time: datetime | None = None
    eta_time: datetime | None = None
    deadline_time: datetime | None = None


class FeesRequest(BaseModel):
    amount: float = Field(ge=0)
    currency: str = "USD"


class CreateDeliveryRequest(BaseModel):
    order_id: str
    restaurant_id: str | None = None
    channel: str = "native"
    provider: str | None = None
    pick_up: StopRequest
    drop_off: StopRequest
    fees: FeesRequest | None = None


class AssignProviderRequest(BaseModel):
    provider: str
    provider_identifier: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    allow_skip: bool = False


class CourierRequest(BaseModel):
    name: str
    courier_id: str | None = None
    phone: str | None = None
    image_url: str | None = None


class CourierLocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    recorded_at: datetime | None = None


class CancelDeliveryRequest(BaseModel):
    reason: str


class AttachRefundRequest(BaseModel):
    amount: float = Field(ge=0)
    reason: str
    currency: str | None = None


class ConfigureDeliverySettingsRequest(BaseModel):
    default_provider: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class DeliveryIdResponse(BaseModel):
    delivery_id: str


class StatusResponse(BaseModel):
    status: str


class WebhookResponse(BaseModel):
    status: str
    delivery_id: str | None = None


class QuoteResponse(BaseModel):
    amount: float
    currency: str
    eta_minutes: int | None = None


class CourierResponse(BaseModel):
    courier_id: str
    name: str
    phone: str | None = None
    image_url: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_updated_at: datetime | None = None


class StopResponse(BaseModel):
    name: str
    address: str
    phone: str | None = None
    note: str | None = None
    ready_time: datetime | None = None
    eta_time: datetime | None = None
    deadline_time: datetime | None = None


class FeesResponse(BaseModel):
    amount: float
    currency: str


class RefundResponse(BaseModel):
    amount: float
    currency: str
    reason: str
    requested_at: datetime | None = None


class DeliveryResponse(BaseModel):
    delivery_id: str
    order_id: str
    restaurant_id: str | None = None
    channel: str
    provider: str | None = None
    provider_identifier: str | None = None
    status: str
    pick_up: StopResponse | None = None
    drop_off: StopResponse | None = None
    courier: CourierResponse | None = None
    tracking_url: str | None = None
    fees: FeesResponse | None = None
    collection_code: str | None = None
    refund: RefundResponse | None = None
    dispatch_attempts: int = 0
    cancellation_reason: str | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeliverySettingsResponse(BaseModel):
    restaurant_id: str
    default_provider: str | None = None
