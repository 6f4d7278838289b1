"""Generic status update: any transition without a dedicated template."""

from html import escape

from storefront.notification.notification import NotificationType
from storefront.notification.templates.formatting import greeting


class StatusUpdateTemplate:
    notification_type = NotificationType.STATUS_UPDATE.value

    @staticmethod
    def render(context: dict) -> dict:
        order_id = context["order_id"]
        status_text = context.get("status_text") or context.get("status", "")
        reason = context.get("reason")
        return {
            "subject": f"Order #{order_id}: {status_text}",
            "html": (
                f"<p>{greeting(context.get('customer_name'))}</p>"
                f"<p>The status of your order #{order_id} changed to <strong>{escape(status_text)}</strong>.</p>"
                + (f"<p>{escape(reason)}</p>" if reason else "")
            ),
        }
