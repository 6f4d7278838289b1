"""Package weight data used by the shipping quote engine.

A product's weight comes from its own entry, or failing that from its
category. Products with dimensions are charged by the greater of actual and
volumetric weight. A product with neither source is unresolvable: no price is
ever quoted for goods of unknown weight.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from storefront.errors import UnresolvableItem

# cm³ per kg, the usual parcel-carrier divisor
VOLUMETRIC_DIVISOR = Decimal(5000)


@dataclass(frozen=True)
class ProductProfile:
    weight_kg: Decimal | None = None
    category: str | None = None
    dimensions_cm: tuple[Decimal, Decimal, Decimal] | None = None

    @property
    def volumetric_weight_kg(self) -> Decimal | None:
        if not self.dimensions_cm:
            return None
        length, width, height = self.dimensions_cm
        return length * width * height / VOLUMETRIC_DIVISOR


@dataclass(frozen=True)
class WeightCatalog:
    products: Mapping[str, ProductProfile] = field(default_factory=dict)
    category_weights: Mapping[str, Decimal] = field(default_factory=dict)

    def unit_weight(self, product_id: str) -> Decimal:
        """Chargeable weight of one unit of ``product_id`` in kg."""
        profile = self.products.get(product_id)
        if profile is None:
            raise UnresolvableItem(product_id)

        actual = profile.weight_kg
        if actual is None and profile.category is not None:
            actual = self.category_weights.get(profile.category)
        if actual is None:
            raise UnresolvableItem(product_id)

        volumetric = profile.volumetric_weight_kg
        if volumetric is not None and volumetric > actual:
            return volumetric
        return actual

    @classmethod
    def from_dict(cls, data: dict) -> "WeightCatalog":
        """Build a catalog from its JSON shape.

        ``{"categories": {"t-shirts": 0.25},
           "products": {"tee-black": {"category": "t-shirts", "dimensions_cm": [30, 25, 3]}}}``
        """
        categories = {name: _decimal(weight) for name, weight in (data.get("categories") or {}).items()}
        products = {}
        for product_id, entry in (data.get("products") or {}).items():
            dims = entry.get("dimensions_cm")
            products[str(product_id)] = ProductProfile(
                weight_kg=_decimal(entry["weight_kg"]) if entry.get("weight_kg") is not None else None,
                category=entry.get("category"),
                dimensions_cm=tuple(_decimal(d) for d in dims) if dims else None,
            )
        return cls(products=products, category_weights=categories)


def _decimal(value) -> Decimal:
    # str() first so floats like 0.1 keep their printed value
    return Decimal(str(value))


def load_catalog(path: str | Path | None) -> WeightCatalog:
    """Load a catalog file; no path means an empty catalog (every item unresolvable)."""
    if not path:
        return WeightCatalog()
    with open(path, encoding="utf-8") as fh:
        return WeightCatalog.from_dict(json.load(fh))
