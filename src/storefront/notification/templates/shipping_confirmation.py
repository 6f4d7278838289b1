"""Shipping confirmation: sent when the order is handed to the carrier."""

from html import escape

from storefront.notification.notification import NotificationType
from storefront.notification.templates.formatting import greeting


class ShippingConfirmationTemplate:
    notification_type = NotificationType.SHIPPING_CONFIRMATION.value

    @staticmethod
    def render(context: dict) -> dict:
        order_id = context["order_id"]
        tracking_number = context.get("tracking_number")
        tracking_url = context.get("tracking_url")
        carrier = context.get("carrier_name") or "the carrier"

        tracking = ""
        if tracking_number:
            tracking = f"<p>Tracking number: <strong>{escape(tracking_number)}</strong></p>"
        if tracking_url:
            tracking += f'<p><a href="{escape(tracking_url)}">Track your parcel</a></p>'

        return {
            "subject": f"Your order #{order_id} is on its way",
            "html": (
                f"<p>{greeting(context.get('customer_name'))}</p>"
                f"<p>Your order #{order_id} has been handed to {escape(carrier)}.</p>"
                f"{tracking}"
            ),
        }
