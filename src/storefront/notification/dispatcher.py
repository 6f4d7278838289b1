"""Notification dispatcher: turns order transitions into customer emails.

The dispatcher is strictly downstream of committed state: the orchestrator
calls it only after an order change has been stored. Each send writes one
``Notification`` record, ``sent`` with the provider message id on success,
``failed`` otherwise. A failed send raises ``NotificationFailed`` so the
caller can report it; the order change is never rolled back.
"""

import structlog

from storefront.email.port import Attachment, EmailPort
from storefront.errors import NotificationFailed, UpstreamUnavailable
from storefront.notification.notification import (
    Notification,
    NotificationStatus,
    NotificationType,
)
from storefront.notification.templates import get_template
from storefront.order.order import Order, OrderStatus
from storefront.utils.locks import KeyedLocks

logger = structlog.get_logger(__name__)

_message_locks = KeyedLocks()


def template_for_transition(new_status: OrderStatus) -> NotificationType:
    if new_status == OrderStatus.SHIPPED:
        return NotificationType.SHIPPING_CONFIRMATION
    if new_status == OrderStatus.DELIVERED:
        return NotificationType.DELIVERED_CONFIRMATION
    return NotificationType.STATUS_UPDATE


class NotificationDispatcher:
    def __init__(self, email: EmailPort, notifications, site_url: str = "", carrier_name: str = "Packeta"):
        self.email = email
        self.notifications = notifications
        self.site_url = site_url.rstrip("/")
        self.carrier_name = carrier_name

    # -------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------
    def _order_context(self, order: Order) -> dict:
        return {
            "order_id": str(order.id),
            "customer_name": order.customer_name,
            "status": order.status,
            "status_text": order.status_text,
            "currency": order.currency,
            "amount_total": order.amount_total,
            "amount_shipping": order.amount_shipping,
            "items": [
                {
                    "product_id": item.product_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "size": item.size,
                }
                for item in (order.items or [])
            ],
            "tracking_number": order.carrier_shipment_id,
            "tracking_url": order.carrier_tracking_url,
            "carrier_name": self.carrier_name,
            "feedback_url": f"{self.site_url}/review/{order.id}" if self.site_url else None,
            "reason": order.cancellation_reason if order.status == OrderStatus.CANCELLED.value else None,
        }

    # -------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------
    def _send(
        self,
        recipient: str,
        notification_type: NotificationType,
        context: dict,
        order_id: str | None = None,
        trigger_status: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> Notification:
        rendered = get_template(notification_type.value).render(context)
        try:
            message_id = self.email.send(recipient, rendered["subject"], rendered["html"], attachments)
        except UpstreamUnavailable as exc:
            notification = Notification.record_failed(
                recipient=recipient,
                notification_type=notification_type.value,
                subject=rendered["subject"],
                reason=exc.message,
                order_id=order_id,
                trigger_status=trigger_status,
            )
            self.notifications.add(notification)
            logger.error(
                "notification_send_failed",
                order_id=order_id,
                notification_type=notification_type.value,
                notification_id=str(notification.id),
                error=exc.message,
            )
            raise NotificationFailed(
                f"Could not send {notification_type.value} email: {exc.message}",
                notification_id=str(notification.id),
            ) from exc

        notification = Notification.record_sent(
            recipient=recipient,
            notification_type=notification_type.value,
            subject=rendered["subject"],
            provider_message_id=message_id,
            order_id=order_id,
            trigger_status=trigger_status,
        )
        self.notifications.add(notification)
        logger.info(
            "notification_sent",
            order_id=order_id,
            notification_type=notification_type.value,
            provider_message_id=message_id,
        )
        return notification

    def _send_for_order(self, order: Order, notification_type: NotificationType) -> Notification | None:
        if not order.customer_email:
            logger.info(
                "notification_skipped_no_email",
                order_id=str(order.id),
                notification_type=notification_type.value,
            )
            return None
        return self._send(
            order.customer_email,
            notification_type,
            self._order_context(order),
            order_id=str(order.id),
            trigger_status=order.status,
        )

    def notify_order_placed(self, order: Order) -> Notification | None:
        return self._send_for_order(order, NotificationType.ORDER_CONFIRMATION)

    def notify_transition(self, order: Order, previous_status: OrderStatus) -> Notification | None:
        """Email the customer about a committed transition; nothing is sent if the status did not change."""
        if order.status_enum == previous_status:
            return None
        return self._send_for_order(order, template_for_transition(order.status_enum))

    def notify_current_status(self, order: Order) -> Notification | None:
        """Re-send the email matching the order's current status (admin resend)."""
        if order.status_enum in (OrderStatus.NEW, OrderStatus.PAID):
            return self._send_for_order(order, NotificationType.ORDER_CONFIRMATION)
        return self._send_for_order(order, template_for_transition(order.status_enum))

    def compose(
        self,
        to: str,
        subject: str,
        html: str,
        order_id: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> Notification:
        return self._send(
            to,
            NotificationType.SUPPORT_REPLY,
            {"subject": subject, "html": html},
            order_id=order_id,
            attachments=attachments,
        )

    def send_cart_recovery(self, recipient: str, context: dict) -> Notification:
        return self._send(recipient, NotificationType.CART_RECOVERY, context)

    # -------------------------------------------------------------------
    # Provider delivery status
    # -------------------------------------------------------------------
    def apply_delivery_status(self, provider_message_id: str, status: NotificationStatus, occurred_at=None) -> bool:
        """Apply a delivered/opened/bounced update; unknown message ids are ignored."""
        if not provider_message_id:
            return False

        with _message_locks.hold(provider_message_id):
            notification = self.notifications.find_by_message_id(provider_message_id)
            if notification is None:
                logger.info("delivery_status_for_unknown_message", provider_message_id=provider_message_id)
                return False

            previous = notification.status
            if not notification.apply_delivery_status(status, occurred_at):
                logger.info(
                    "delivery_status_ignored",
                    provider_message_id=provider_message_id,
                    current_status=previous,
                    incoming_status=status.value,
                )
                return False

            self.notifications.add(notification)
            logger.info(
                "delivery_status_applied",
                provider_message_id=provider_message_id,
                from_status=previous,
                to_status=status.value,
            )
            return True
