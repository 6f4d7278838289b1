"""Delivered confirmation: asks for feedback once the carrier reports delivery."""

from html import escape

from storefront.notification.notification import NotificationType
from storefront.notification.templates.formatting import greeting


class DeliveredConfirmationTemplate:
    notification_type = NotificationType.DELIVERED_CONFIRMATION.value

    @staticmethod
    def render(context: dict) -> dict:
        order_id = context["order_id"]
        feedback_url = context.get("feedback_url")
        feedback = f'<p><a href="{escape(feedback_url)}">Tell us how you like it</a></p>' if feedback_url else ""
        return {
            "subject": f"Your order #{order_id} has been delivered",
            "html": (
                f"<p>{greeting(context.get('customer_name'))}</p>"
                f"<p>Your order #{order_id} has been delivered. We hope you enjoy it!</p>"
                f"{feedback}"
            ),
        }
