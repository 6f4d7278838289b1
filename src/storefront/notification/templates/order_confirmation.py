"""Order confirmation: sent once when an order is recorded."""

from storefront.notification.notification import NotificationType
from storefront.notification.templates.formatting import greeting, item_rows, money


class OrderConfirmationTemplate:
    notification_type = NotificationType.ORDER_CONFIRMATION.value

    @staticmethod
    def render(context: dict) -> dict:
        order_id = context["order_id"]
        currency = context.get("currency", "CZK")
        return {
            "subject": f"Order confirmation #{order_id}",
            "html": (
                f"<p>{greeting(context.get('customer_name'))}</p>"
                f"<p>Thank you for your order #{order_id}. We will let you know as soon as it ships.</p>"
                f"{item_rows(context.get('items', []), currency)}"
                f"<p>Shipping: {money(context.get('amount_shipping'), currency)}<br>"
                f"Total: <strong>{money(context.get('amount_total'), currency)}</strong></p>"
            ),
        }
