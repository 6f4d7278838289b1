"""Template registry: maps NotificationType to template classes.

Each template renders a subject and an HTML body from a plain context dict.
"""

from storefront.notification.notification import NotificationType
from storefront.notification.templates.cart_recovery import CartRecoveryTemplate
from storefront.notification.templates.delivered_confirmation import DeliveredConfirmationTemplate
from storefront.notification.templates.order_confirmation import OrderConfirmationTemplate
from storefront.notification.templates.shipping_confirmation import ShippingConfirmationTemplate
from storefront.notification.templates.status_update import StatusUpdateTemplate
from storefront.notification.templates.support_reply import SupportReplyTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationType.ORDER_CONFIRMATION.value: OrderConfirmationTemplate,
    NotificationType.SHIPPING_CONFIRMATION.value: ShippingConfirmationTemplate,
    NotificationType.STATUS_UPDATE.value: StatusUpdateTemplate,
    NotificationType.DELIVERED_CONFIRMATION.value: DeliveredConfirmationTemplate,
    NotificationType.SUPPORT_REPLY.value: SupportReplyTemplate,
    NotificationType.CART_RECOVERY.value: CartRecoveryTemplate,
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls
