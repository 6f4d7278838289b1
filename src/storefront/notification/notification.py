"""Notification record: one email sent (or attempted) by the dispatcher.

Records are written after the provider call returns and afterwards change
only through the provider's delivery-status webhooks. Those updates are
monotonic:

    SENT → DELIVERED → OPENED
    {SENT, DELIVERED} → BOUNCED
    FAILED (send never succeeded)

OPENED, BOUNCED and FAILED end the progression. An update that would move
backwards, or repeat the current status, is ignored.
"""

from datetime import datetime
from enum import Enum

from protean.fields import DateTime, Identifier, String

from storefront.domain import storefront
from storefront.utils.timestamps import utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationType(Enum):
    ORDER_CONFIRMATION = "order-confirmation"
    SHIPPING_CONFIRMATION = "shipping-confirmation"
    STATUS_UPDATE = "status-update"
    DELIVERED_CONFIRMATION = "delivered-confirmation"
    SUPPORT_REPLY = "support-reply"
    CART_RECOVERY = "cart-recovery"


class NotificationStatus(Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    BOUNCED = "bounced"
    FAILED = "failed"


_PROGRESS = {
    NotificationStatus.SENT: 0,
    NotificationStatus.DELIVERED: 1,
    NotificationStatus.OPENED: 2,
}

_FINAL_STATUSES = {NotificationStatus.OPENED, NotificationStatus.BOUNCED, NotificationStatus.FAILED}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@storefront.event(part_of="Notification")
class NotificationSent:
    __version__ = 1

    notification_id = Identifier(required=True)
    order_id = Identifier()
    notification_type = String(required=True)
    provider_message_id = String(required=True)
    sent_at = DateTime(required=True)


@storefront.event(part_of="Notification")
class NotificationSendFailed:
    __version__ = 1

    notification_id = Identifier(required=True)
    order_id = Identifier()
    notification_type = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@storefront.event(part_of="Notification")
class NotificationStatusUpdated:
    __version__ = 1

    notification_id = Identifier(required=True)
    provider_message_id = String(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    occurred_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Notification:
    order_id: Identifier()
    recipient: String(required=True, max_length=254)
    notification_type: String(choices=NotificationType, required=True)
    subject: String(max_length=500)

    # Order status whose transition produced this email, if any
    trigger_status: String(max_length=50)

    status: String(choices=NotificationStatus, required=True)
    provider_message_id: String(max_length=255)
    failure_reason: String(max_length=500)

    sent_at: DateTime()
    delivered_at: DateTime()
    opened_at: DateTime()
    bounced_at: DateTime()

    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def record_sent(
        cls, recipient, notification_type, subject, provider_message_id, order_id=None, trigger_status=None
    ):
        now = utcnow()
        notification = cls(
            order_id=order_id,
            recipient=recipient,
            notification_type=notification_type,
            subject=subject,
            trigger_status=trigger_status,
            status=NotificationStatus.SENT.value,
            provider_message_id=provider_message_id,
            sent_at=now,
            created_at=now,
            updated_at=now,
        )
        notification.raise_(
            NotificationSent(
                notification_id=str(notification.id),
                order_id=order_id,
                notification_type=notification_type,
                provider_message_id=provider_message_id,
                sent_at=now,
            )
        )
        return notification

    @classmethod
    def record_failed(cls, recipient, notification_type, subject, reason, order_id=None, trigger_status=None):
        now = utcnow()
        notification = cls(
            order_id=order_id,
            recipient=recipient,
            notification_type=notification_type,
            subject=subject,
            trigger_status=trigger_status,
            status=NotificationStatus.FAILED.value,
            failure_reason=(reason or "")[:500],
            created_at=now,
            updated_at=now,
        )
        notification.raise_(
            NotificationSendFailed(
                notification_id=str(notification.id),
                order_id=order_id,
                notification_type=notification_type,
                reason=(reason or "unknown")[:500],
                failed_at=now,
            )
        )
        return notification

    # -------------------------------------------------------------------
    # Provider delivery status
    # -------------------------------------------------------------------
    def accepts(self, new_status: NotificationStatus) -> bool:
        current = NotificationStatus(self.status)
        if current in _FINAL_STATUSES:
            return False
        if new_status == NotificationStatus.BOUNCED:
            return True
        if new_status not in _PROGRESS:
            return False
        return _PROGRESS[new_status] > _PROGRESS[current]

    def apply_delivery_status(self, new_status: NotificationStatus, occurred_at: datetime | None = None) -> bool:
        """Apply a provider update; returns False when it was out of order or a repeat."""
        if not self.accepts(new_status):
            return False

        previous = self.status
        at = occurred_at or utcnow()
        if new_status == NotificationStatus.DELIVERED and self.delivered_at is None:
            self.delivered_at = at
        elif new_status == NotificationStatus.OPENED and self.opened_at is None:
            self.opened_at = at
        elif new_status == NotificationStatus.BOUNCED:
            self.bounced_at = at

        self.status = new_status.value
        self.updated_at = utcnow()
        self.raise_(
            NotificationStatusUpdated(
                notification_id=str(self.id),
                provider_message_id=self.provider_message_id,
                from_status=previous,
                to_status=new_status.value,
                occurred_at=at,
            )
        )
        return True


@storefront.repository(part_of=Notification)
class NotificationRepository:
    def find_by_message_id(self, provider_message_id: str) -> Notification | None:
        results = self._dao.query.filter(provider_message_id=provider_message_id).all().items
        return results[0] if results else None

    def for_order(self, order_id: str) -> list[Notification]:
        return self._dao.query.filter(order_id=str(order_id)).all().items
