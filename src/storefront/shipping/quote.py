"""Shipping quote engine: deterministic Packeta pricing for a cart.

The engine is a pure function of the cart, the delivery method and the
weight catalog: it creates no records and can be called speculatively from
the storefront.

Pricing (CZK):
    base      by delivery method and total chargeable weight
    fuel      5 % of base, rounded up to whole crowns
    toll      2.10 up to 5 kg, 4.80 above
    handling  flat 10
    total     ceil(base + fuel + toll + handling)
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from storefront.errors import InvalidDeliveryMethod, InvalidPayload
from storefront.order.order import DeliveryMethod
from storefront.shipping.catalog import WeightCatalog

CARRIER_NAME = "Packeta"
CURRENCY = "CZK"
MINOR_UNITS = 100


@dataclass(frozen=True)
class RateTier:
    max_weight_kg: Decimal | None  # None: everything above the previous tier
    base_price: Decimal


RATE_CARD = {
    DeliveryMethod.PICKUP: (
        RateTier(Decimal(5), Decimal(62)),
        RateTier(None, Decimal(120)),
    ),
    DeliveryMethod.HOME_DELIVERY: (
        RateTier(Decimal(5), Decimal(89)),
        RateTier(Decimal(15), Decimal(130)),
        RateTier(None, Decimal(250)),
    ),
}

SERVICE_NAMES = {
    DeliveryMethod.PICKUP: "Z-Point",
    DeliveryMethod.HOME_DELIVERY: "Home Delivery",
}

FUEL_SURCHARGE_RATE = Decimal("0.05")
TOLL_WEIGHT_LIMIT_KG = Decimal(5)
TOLL_LIGHT = Decimal("2.10")
TOLL_HEAVY = Decimal("4.80")
HANDLING_MARGIN = Decimal(10)

_METHOD_ALIASES = {
    "pickup": DeliveryMethod.PICKUP,
    "pickup_point": DeliveryMethod.PICKUP,
    "zpoint": DeliveryMethod.PICKUP,
    "z_point": DeliveryMethod.PICKUP,
    "home_delivery": DeliveryMethod.HOME_DELIVERY,
    "home": DeliveryMethod.HOME_DELIVERY,
}


@dataclass(frozen=True)
class ShippingQuote:
    """A priced shipment; money fields are in minor units (haléř)."""

    carrier: str
    service: str
    delivery_method: str
    weight_kg: Decimal
    base: int
    fuel_surcharge: int
    toll: int
    handling: int
    total: int
    currency: str = CURRENCY


def parse_delivery_method(value: str | None) -> DeliveryMethod:
    key = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    method = _METHOD_ALIASES.get(key)
    if method is None:
        raise InvalidDeliveryMethod(value or "")
    return method


def shipment_weight(items: Iterable[tuple[str, int]], catalog: WeightCatalog) -> Decimal:
    """Total chargeable weight in kg of ``(product_id, quantity)`` pairs."""
    total = Decimal(0)
    seen_any = False
    for product_id, quantity in items:
        if quantity is None or int(quantity) <= 0:
            raise InvalidPayload(f"Quantity for {product_id} must be positive")
        total += catalog.unit_weight(str(product_id)) * int(quantity)
        seen_any = True
    if not seen_any:
        raise InvalidPayload("Cannot quote shipping for an empty cart")
    return total


def _base_price(method: DeliveryMethod, weight_kg: Decimal) -> Decimal:
    for tier in RATE_CARD[method]:
        if tier.max_weight_kg is None or weight_kg <= tier.max_weight_kg:
            return tier.base_price
    raise AssertionError("rate card has no open-ended tier")


def _minor(amount: Decimal) -> int:
    return int((amount * MINOR_UNITS).to_integral_value(rounding=ROUND_CEILING))


def quote_shipping(
    items: Iterable[tuple[str, int]],
    delivery_method: str,
    catalog: WeightCatalog,
) -> ShippingQuote:
    """Price a cart for the given delivery method.

    Raises ``InvalidDeliveryMethod`` before looking at the items, and
    ``UnresolvableItem`` for any product without weight data.
    """
    method = parse_delivery_method(delivery_method)
    weight = shipment_weight(items, catalog)

    base = _base_price(method, weight)
    fuel = Decimal(math.ceil(base * FUEL_SURCHARGE_RATE))
    toll = TOLL_LIGHT if weight <= TOLL_WEIGHT_LIMIT_KG else TOLL_HEAVY
    total = Decimal(math.ceil(base + fuel + toll + HANDLING_MARGIN))

    return ShippingQuote(
        carrier=CARRIER_NAME,
        service=SERVICE_NAMES[method],
        delivery_method=method.value,
        weight_kg=weight,
        base=_minor(base),
        fuel_surcharge=_minor(fuel),
        toll=_minor(toll),
        handling=_minor(HANDLING_MARGIN),
        total=_minor(total),
    )
