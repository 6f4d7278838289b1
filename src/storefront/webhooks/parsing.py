"""Provider payload parsing: raw webhook bytes to typed events.

Runs only after the signature has been verified. Provider field-name
variance (camelCase vs snake_case, renamed keys across API versions) is
resolved here and nowhere else. Malformed payloads raise ``InvalidPayload``.

Money in line items: ``unit_price``/``unitPrice``/``unit_amount`` are minor
units; a bare ``price`` is in major units, as the storefront checkout writes it.
"""

import hashlib
import json
from collections.abc import Mapping

from storefront.carrier.tracking import normalize_tracking
from storefront.errors import InvalidPayload
from storefront.notification.notification import NotificationStatus
from storefront.utils.timestamps import parse_timestamp
from storefront.webhooks.events import (
    CarrierStatusChanged,
    EmailStatusChanged,
    IgnoredEvent,
    LineItemData,
    PaymentConfirmed,
)

PAYMENT_CONFIRMED_TYPES = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
        "payment.confirmed",
    }
)
_VERIFIED_PAYMENT_STATUSES = (None, "paid", "no_payment_required")

_EMAIL_STATUSES = {
    "delivered": NotificationStatus.DELIVERED,
    "opened": NotificationStatus.OPENED,
    "bounced": NotificationStatus.BOUNCED,
}


def _load_json(raw_body: bytes) -> dict:
    try:
        body = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayload(f"Webhook body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise InvalidPayload("Webhook body must be a JSON object")
    return body


def _first(data: Mapping, *keys):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _object(value, field: str) -> Mapping:
    """An optional nested JSON object; anything but an object or nothing is malformed."""
    if value in (None, ""):
        return {}
    if not isinstance(value, Mapping):
        raise InvalidPayload(f"{field} must be a JSON object, got {type(value).__name__}")
    return value


def _as_int(value, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"{field} must be an integer, got {value!r}") from None
    if number < 0:
        raise InvalidPayload(f"{field} must not be negative")
    return number


# ---------------------------------------------------------------------------
# Payment provider
# ---------------------------------------------------------------------------
def _line_item(entry: Mapping) -> LineItemData:
    price = entry.get("price")
    product_id = _first(entry, "product_id", "productId", "id")
    if product_id is None and isinstance(price, Mapping):
        product_id = price.get("product")
    if product_id is None:
        raise InvalidPayload("Line item without a product id")

    quantity = _first(entry, "quantity", "qty")
    quantity = 1 if quantity is None else _as_int(quantity, "quantity")
    if quantity < 1:
        raise InvalidPayload(f"Line item {product_id} has no quantity")

    unit_price = _first(entry, "unit_price", "unitPrice", "unit_amount")
    if unit_price is None and isinstance(price, Mapping):
        unit_price = price.get("unit_amount")
    if unit_price is None and isinstance(price, int | float):
        unit_price = round(price * 100)
    if unit_price is None and entry.get("amount_total") is not None:
        unit_price = _as_int(entry["amount_total"], "amount_total") // quantity
    if unit_price is None:
        raise InvalidPayload(f"Line item {product_id} has no price")

    return LineItemData(
        product_id=str(product_id),
        quantity=quantity,
        unit_price=_as_int(unit_price, "unit_price"),
        name=_first(entry, "name", "description", "title"),
        size=_first(entry, "size", "variant"),
    )


def _line_items(session: Mapping, metadata: Mapping) -> tuple[LineItemData, ...]:
    raw_items = _first(metadata, "items", "cart")
    if isinstance(raw_items, str):
        try:
            raw_items = json.loads(raw_items)
        except json.JSONDecodeError as exc:
            raise InvalidPayload(f"metadata.items is not valid JSON: {exc}") from exc
    if raw_items is None:
        raw_items = session.get("line_items")
        if isinstance(raw_items, Mapping):
            raw_items = raw_items.get("data")
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidPayload("Payment event carries no line items")
    if not all(isinstance(entry, Mapping) for entry in raw_items):
        raise InvalidPayload("Every line item must be a JSON object")
    return tuple(_line_item(entry) for entry in raw_items)


def _shipping_address(session: Mapping) -> dict | None:
    holder = _first(session, "shipping_details", "shipping") or {}
    address = holder.get("address") if isinstance(holder, Mapping) else None
    if not isinstance(address, Mapping):
        return None
    street = " ".join(p for p in (address.get("line1"), address.get("line2")) if p) or address.get("street")
    return {
        "street": street,
        "city": address.get("city"),
        "postal_code": _first(address, "postal_code", "zip"),
        "country": address.get("country"),
    }


def parse_payment_event(raw_body: bytes, headers: Mapping[str, str] | None = None):
    body = _load_json(raw_body)
    event_id = body.get("id")
    event_type = body.get("type")
    if not event_id or not event_type:
        raise InvalidPayload("Payment event needs an id and a type")
    if event_type not in PAYMENT_CONFIRMED_TYPES:
        return IgnoredEvent(event_id=str(event_id), provider="payments", event_type=str(event_type))

    data = _object(body.get("data"), "data")
    session = _object(data.get("object", data), "data.object")
    metadata = _object(session.get("metadata"), "metadata")

    payment_reference = _first(session, "id", "payment_reference", "paymentReference")
    if not payment_reference:
        raise InvalidPayload("Payment event has no payment reference")
    amount_total = _first(session, "amount_total", "amountTotal", "amount")
    if amount_total is None:
        raise InvalidPayload("Payment event has no amount")
    currency = _first(session, "currency")
    if not currency:
        raise InvalidPayload("Payment event has no currency")

    customer = _first(session, "customer_details", "customer") or {}
    if not isinstance(customer, Mapping):
        customer = {}

    shipping = session.get("shipping_cost")
    if isinstance(shipping, Mapping):
        amount_shipping = shipping.get("amount_total")
    else:
        amount_shipping = _first(session, "amount_shipping", "shipping_amount") or _first(
            metadata, "shipping_amount", "shippingAmount"
        )

    return PaymentConfirmed(
        event_id=str(event_id),
        payment_reference=str(payment_reference),
        amount_total=_as_int(amount_total, "amount_total"),
        currency=str(currency).upper(),
        items=_line_items(session, metadata),
        payment_verified=session.get("payment_status") in _VERIFIED_PAYMENT_STATUSES,
        amount_shipping=_as_int(amount_shipping or 0, "amount_shipping"),
        customer_email=_first(customer, "email") or _first(session, "customer_email", "email"),
        customer_name=_first(customer, "name") or _first(metadata, "customer_name", "name"),
        customer_phone=_first(customer, "phone") or _first(metadata, "customer_phone", "phone"),
        session_id=_first(metadata, "session_id", "sessionId", "cart_session_id"),
        delivery_method=_first(metadata, "delivery_method", "deliveryMethod", "shipping_method"),
        pickup_point_id=_first(metadata, "pickup_point_id", "pickupPointId", "packeta_point_id", "packetaPointId"),
        pickup_point_name=_first(metadata, "pickup_point_name", "pickupPointName", "packeta_point_name"),
        shipping_address=_shipping_address(session),
    )


# ---------------------------------------------------------------------------
# Email provider
# ---------------------------------------------------------------------------
def parse_email_event(raw_body: bytes, headers: Mapping[str, str] | None = None):
    body = _load_json(raw_body)
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    event_id = lowered.get("svix-id") or body.get("id")
    event_type = str(body.get("type") or "")
    if not event_id or not event_type:
        raise InvalidPayload("Email event needs an id and a type")

    status = _EMAIL_STATUSES.get(event_type.removeprefix("email."))
    if status is None:
        return IgnoredEvent(event_id=str(event_id), provider="email", event_type=event_type)

    data = _object(body.get("data"), "data")
    recipient = data.get("to")
    if isinstance(recipient, list):
        recipient = recipient[0] if recipient else None

    return EmailStatusChanged(
        event_id=str(event_id),
        provider_message_id=str(_first(data, "email_id", "emailId", "id", "message_id") or ""),
        status=status,
        recipient=recipient,
        occurred_at=parse_timestamp(_first(body, "created_at", "createdAt") or data.get("created_at")),
    )


# ---------------------------------------------------------------------------
# Carrier
# ---------------------------------------------------------------------------
def parse_carrier_event(raw_body: bytes, headers: Mapping[str, str] | None = None) -> CarrierStatusChanged:
    body = _load_json(raw_body)
    payload = body.get("data") if isinstance(body.get("data"), Mapping) else body

    shipment_id = _first(payload, "shipment_id", "shipmentId", "packet_id", "packetId", "barcode")
    if not shipment_id:
        raise InvalidPayload("Carrier event has no shipment id")

    # Identical re-deliveries without an event id hash to the same key
    event_id = _first(body, "event_id", "eventId", "id") or hashlib.sha256(raw_body).hexdigest()

    return CarrierStatusChanged(
        event_id=str(event_id),
        shipment_id=str(shipment_id),
        tracking=normalize_tracking(str(shipment_id), dict(payload)),
    )


PARSERS = {
    "payments": parse_payment_event,
    "email": parse_email_event,
    "carrier": parse_carrier_event,
}
