"""Order aggregate: the durable record the fulfillment pipeline revolves around.

State Machine:
    NEW → PAID → PROCESSING → SHIPPED → DELIVERED
    PAID → SHIPPED (shipment created straight from a paid order)
    {NEW, PAID, PROCESSING, SHIPPED} → {CANCELLED, RETURNED}
    DELIVERED → RETURNED (only through an approved return request)

DELIVERED, CANCELLED and RETURNED are terminal for everyday operations.
Applying the status an order already has is a no-op, which makes every
transition safe to replay.

Totals and line items are written once by ``Order.create`` and no method
touches them afterwards.
"""

import json
from datetime import datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    HasMany,
    Integer,
    String,
    ValueObject,
)

from storefront.domain import storefront
from storefront.errors import StateConflict
from storefront.order.events import OrderPlaced, OrderStatusChanged, ShipmentCreated
from storefront.utils.timestamps import utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    NEW = "new"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class DeliveryMethod(Enum):
    PICKUP = "pickup"
    HOME_DELIVERY = "home_delivery"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED})

_VALID_TRANSITIONS = {
    OrderStatus.NEW: {
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.RETURNED,
    },
    OrderStatus.PAID: {
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.RETURNED,
    },
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.RETURNED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},  # approved return request only
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

STATUS_TEXTS = {
    OrderStatus.NEW: "Order received",
    OrderStatus.PAID: "Payment received",
    OrderStatus.PROCESSING: "Being prepared for shipping",
    OrderStatus.SHIPPED: "Handed to the carrier",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.RETURNED: "Returned",
}


def parse_status(value: str) -> OrderStatus:
    """Parse a status string from outside the domain; unknown values are rejected."""
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value!r}"]}) from None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Home-delivery address."""

    street = String(max_length=255)
    city = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class LineItem:
    """A purchased product line, priced in minor currency units."""

    product_id = String(required=True, max_length=255)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    size = String(max_length=50)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    payment_reference = String(max_length=255)
    checkout_session_id = String(max_length=255)

    customer_email = String(max_length=254)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)

    delivery_method = String(max_length=50, choices=DeliveryMethod)
    pickup_point_id = String(max_length=100)
    pickup_point_name = String(max_length=255)
    shipping_address = ValueObject(ShippingAddress)

    items = HasMany(LineItem)
    status = String(choices=OrderStatus, default=OrderStatus.PAID.value)

    currency = String(max_length=3, default="CZK")
    amount_total = Integer(required=True, min_value=0)
    amount_shipping = Integer(min_value=0, default=0)

    carrier_shipment_id = String(max_length=100)
    carrier_tracking_url = String(max_length=500)

    # Last carrier state seen by reconciliation (cache; the carrier owns it)
    tracking_status = String(max_length=50)
    tracking_status_text = String(max_length=255)
    tracking_location = String(max_length=255)
    estimated_delivery = DateTime()
    tracking_checked_at = DateTime()

    cancellation_reason = String(max_length=500)

    created_at = DateTime()
    updated_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()

    @invariant.post
    def fulfilment_timestamps_follow_status(self):
        if self.status == OrderStatus.SHIPPED.value and self.shipped_at is None:
            raise ValidationError({"shipped_at": ["A shipped order must record when it shipped"]})
        if self.status == OrderStatus.DELIVERED.value and self.delivered_at is None:
            raise ValidationError({"delivered_at": ["A delivered order must record when it was delivered"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        items_data: list[dict],
        amount_total: int,
        currency: str = "CZK",
        amount_shipping: int = 0,
        status: OrderStatus = OrderStatus.PAID,
        payment_reference: str | None = None,
        checkout_session_id: str | None = None,
        customer_email: str | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        delivery_method: str | None = None,
        pickup_point_id: str | None = None,
        pickup_point_name: str | None = None,
        shipping_address: dict | None = None,
    ):
        """Record a new order; only ``new`` and ``paid`` are valid starting points."""
        if status not in (OrderStatus.NEW, OrderStatus.PAID):
            raise ValidationError({"status": [f"An order cannot start as {status.value}"]})
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one line item"]})

        now = utcnow()
        order = cls(
            payment_reference=payment_reference,
            checkout_session_id=checkout_session_id,
            customer_email=customer_email,
            customer_name=customer_name,
            customer_phone=customer_phone,
            delivery_method=delivery_method,
            pickup_point_id=pickup_point_id,
            pickup_point_name=pickup_point_name,
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            status=status.value,
            currency=(currency or "CZK").upper(),
            amount_total=amount_total,
            amount_shipping=amount_shipping or 0,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(LineItem(**item_data))

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                payment_reference=payment_reference,
                customer_email=customer_email,
                status=status.value,
                amount_total=amount_total,
                currency=order.currency,
                item_count=len(items_data),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def status_text(self) -> str:
        return STATUS_TEXTS[self.status_enum]

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    def items_snapshot(self) -> str:
        return json.dumps(
            [
                {
                    "product_id": item.product_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "size": item.size,
                }
                for item in (self.items or [])
            ]
        )

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def can_transition_to(self, target: OrderStatus, via_return: bool = False) -> bool:
        current = self.status_enum
        if target not in _VALID_TRANSITIONS[current]:
            return False
        if current == OrderStatus.DELIVERED and not via_return:
            return False
        return True

    def transition_to(
        self,
        target: OrderStatus,
        shipment_id: str | None = None,
        tracking_url: str | None = None,
        reason: str | None = None,
        occurred_at: datetime | None = None,
        via_return: bool = False,
    ) -> bool:
        """Move to ``target``; returns False when the order is already there."""
        current = self.status_enum
        if target == current:
            return False
        if not self.can_transition_to(target, via_return=via_return):
            if current == OrderStatus.DELIVERED and target == OrderStatus.RETURNED:
                message = "A delivered order can only be returned through an approved return request"
            else:
                message = f"Cannot transition from {current.value} to {target.value}"
            raise StateConflict(message, current_status=current.value, target_status=target.value)

        now = utcnow()
        if target == OrderStatus.SHIPPED:
            if shipment_id:
                self._set_shipment(shipment_id, tracking_url)
            self.shipped_at = occurred_at or now
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = occurred_at or now
        elif target == OrderStatus.CANCELLED:
            self.cancellation_reason = reason

        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=current.value,
                to_status=target.value,
                reason=reason,
                changed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Shipment
    # -------------------------------------------------------------------
    def attach_shipment(self, shipment_id: str, tracking_url: str | None = None) -> None:
        """Record the carrier shipment created for this order."""
        if self.is_terminal:
            raise StateConflict(
                f"Cannot attach a shipment to a {self.status} order",
                current_status=self.status,
            )
        self._set_shipment(shipment_id, tracking_url)
        self.updated_at = utcnow()

    def _set_shipment(self, shipment_id: str, tracking_url: str | None) -> None:
        if self.carrier_shipment_id and self.carrier_shipment_id != shipment_id:
            raise StateConflict(
                f"Order already has shipment {self.carrier_shipment_id}",
                current_status=self.status,
            )
        if self.carrier_shipment_id != shipment_id:
            self.raise_(
                ShipmentCreated(
                    order_id=str(self.id),
                    shipment_id=shipment_id,
                    tracking_url=tracking_url,
                    created_at=utcnow(),
                )
            )
        self.carrier_shipment_id = shipment_id
        if tracking_url:
            self.carrier_tracking_url = tracking_url

    def record_tracking(
        self,
        status: str,
        status_text: str | None = None,
        location: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> None:
        """Cache the carrier's latest view of the shipment."""
        now = utcnow()
        self.tracking_status = status
        self.tracking_status_text = status_text
        self.tracking_location = location
        self.estimated_delivery = estimated_delivery
        self.tracking_checked_at = now
        self.updated_at = now
