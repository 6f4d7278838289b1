"""Storefront fulfillment API package."""

from storefront.api.routes import (
    cart_router,
    maintenance_router,
    notification_router,
    order_router,
    returns_router,
    shipping_router,
    webhook_router,
)

__all__ = [
    "webhook_router",
    "order_router",
    "returns_router",
    "cart_router",
    "shipping_router",
    "notification_router",
    "maintenance_router",
]
