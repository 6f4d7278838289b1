"""Typed inbound events produced by the ingestion layer.

Provider payload field names stop at the parser; the orchestrator only sees
these plain, immutable values.
"""

from dataclasses import dataclass
from datetime import datetime

from storefront.carrier.tracking import TrackingState
from storefront.notification.notification import NotificationStatus


@dataclass(frozen=True)
class LineItemData:
    product_id: str
    quantity: int
    unit_price: int  # minor units
    name: str | None = None
    size: str | None = None

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "size": self.size,
        }


@dataclass(frozen=True)
class PaymentConfirmed:
    event_id: str
    payment_reference: str
    amount_total: int
    currency: str
    items: tuple[LineItemData, ...]
    payment_verified: bool = True
    amount_shipping: int = 0
    customer_email: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    session_id: str | None = None
    delivery_method: str | None = None
    pickup_point_id: str | None = None
    pickup_point_name: str | None = None
    shipping_address: dict | None = None


@dataclass(frozen=True)
class EmailStatusChanged:
    event_id: str
    provider_message_id: str
    status: NotificationStatus  # DELIVERED, OPENED or BOUNCED
    recipient: str | None = None
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class CarrierStatusChanged:
    event_id: str
    shipment_id: str
    tracking: TrackingState


@dataclass(frozen=True)
class IgnoredEvent:
    """A verified event of a type this pipeline does not act on."""

    event_id: str
    provider: str
    event_type: str
