"""Pydantic API schemas for the storefront fulfillment API.

These are the external API contracts, kept separate from domain objects. Money
is always an integer amount in minor currency units.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class LineItemSchema(BaseModel):
    product_id: str
    name: str | None = None
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    size: str | None = None


class AddressSchema(BaseModel):
    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    outcome: dict = {}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    items: list[LineItemSchema]
    amount_total: int = Field(ge=0)
    currency: str = "CZK"
    amount_shipping: int = Field(0, ge=0)
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_method: str | None = None
    pickup_point_id: str | None = None
    pickup_point_name: str | None = None
    shipping_address: AddressSchema | None = None


class TransitionRequest(BaseModel):
    status: str
    shipment_id: str | None = None
    tracking_url: str | None = None
    reason: str | None = None
    expected_status: str | None = None


class OrderOutcomeResponse(BaseModel):
    order_id: str
    status: str
    previous_status: str | None = None
    changed: bool = False
    created: bool = False
    notification_id: str | None = None
    notification_error: str | None = None


class ShipmentResponse(BaseModel):
    order_id: str
    shipment_id: str
    tracking_url: str | None = None
    created: bool


class OrderResponse(BaseModel):
    order_id: str
    status: str
    status_text: str
    payment_reference: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    delivery_method: str | None = None
    pickup_point_id: str | None = None
    pickup_point_name: str | None = None
    currency: str
    amount_total: int
    amount_shipping: int = 0
    items: list[LineItemSchema] = []
    carrier_shipment_id: str | None = None
    carrier_tracking_url: str | None = None
    tracking_status: str | None = None
    tracking_status_text: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancellation_reason: str | None = None


class TrackingEventSchema(BaseModel):
    occurred_at: str | None = None
    status: str
    status_text: str
    location: str | None = None


class TrackingResponse(BaseModel):
    order_id: str
    status: str
    status_text: str
    shipment_id: str | None = None
    tracking_url: str | None = None
    carrier_status: str
    carrier_status_text: str
    location: str | None = None
    estimated_delivery: str | None = None
    events: list[TrackingEventSchema] = []


class NotificationResponse(BaseModel):
    notification_id: str
    notification_type: str
    recipient: str
    status: str
    subject: str | None = None
    provider_message_id: str | None = None
    failure_reason: str | None = None
    trigger_status: str | None = None
    created_at: datetime | None = None


class ResendResponse(BaseModel):
    order_id: str
    notification_id: str
    notification_type: str


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
class ReturnCreateRequest(BaseModel):
    customer_email: str
    reason: str
    description: str | None = None


class ResolveReturnRequest(BaseModel):
    approve: bool
    note: str | None = None


class ReturnResponse(BaseModel):
    return_id: str
    order_id: str
    status: str
    reason: str
    customer_email: str
    admin_note: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None


class ReturnOutcomeResponse(BaseModel):
    return_id: str
    order_id: str
    status: str
    order_status: str
    notification_error: str | None = None


# ---------------------------------------------------------------------------
# Carts
# ---------------------------------------------------------------------------
class CartUpsertRequest(BaseModel):
    items: list[dict]
    total_amount: int = Field(0, ge=0)
    customer_email: str | None = None
    customer_name: str | None = None


class CartIdResponse(BaseModel):
    cart_id: str


class CartMarkResponse(BaseModel):
    session_id: str
    changed: bool


# ---------------------------------------------------------------------------
# Shipping quote
# ---------------------------------------------------------------------------
class QuoteItem(BaseModel):
    product_id: str
    quantity: int


class QuoteRequest(BaseModel):
    items: list[QuoteItem]
    delivery_method: str


class QuoteResponse(BaseModel):
    carrier: str
    service: str
    delivery_method: str
    weight_kg: str
    base: int
    fuel_surcharge: int
    toll: int
    handling: int
    total: int
    currency: str


# ---------------------------------------------------------------------------
# Support email
# ---------------------------------------------------------------------------
class AttachmentSchema(BaseModel):
    filename: str
    content_base64: str
    content_type: str = "application/octet-stream"


class ComposeRequest(BaseModel):
    to: str
    subject: str
    html: str
    order_id: str | None = None
    attachments: list[AttachmentSchema] = []


class ComposeResponse(BaseModel):
    notification_id: str
    provider_message_id: str | None = None


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
class ReconciliationResponse(BaseModel):
    checked: int
    transitioned: int
    failed: list[str]
    notification_errors: list[str]


class SweepResponse(BaseModel):
    abandoned: int
    emailed: int
    failed: list[str]


class PruneResponse(BaseModel):
    removed: int
