"""Order domain events: immutable facts about order state changes."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order was recorded, either from a payment confirmation or by an admin."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String()
    customer_email = String()
    status = String(required=True)
    amount_total = Integer(required=True)
    currency = String(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    """The order moved from one status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ShipmentCreated:
    """The carrier accepted a shipment for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    shipment_id = String(required=True)
    tracking_url = String()
    created_at = DateTime(required=True)
