"""Cart recovery: sent once when the sweep marks a cart abandoned."""

from html import escape

from storefront.notification.notification import NotificationType
from storefront.notification.templates.formatting import greeting, item_rows, money


class CartRecoveryTemplate:
    notification_type = NotificationType.CART_RECOVERY.value

    @staticmethod
    def render(context: dict) -> dict:
        currency = context.get("currency", "CZK")
        cart_url = context.get("cart_url")
        link = f'<p><a href="{escape(cart_url)}">Finish your order</a></p>' if cart_url else ""
        return {
            "subject": "You left items in your cart",
            "html": (
                f"<p>{greeting(context.get('customer_name'))}</p>"
                "<p>It looks like you left some items in your shopping cart.</p>"
                f"{item_rows(context.get('items', []), currency)}"
                f"<p>Total: {money(context.get('total_amount'), currency)}</p>"
                f"{link}"
            ),
        }
