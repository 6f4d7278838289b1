"""Support reply: free-form message composed by an admin."""

from storefront.notification.notification import NotificationType


class SupportReplyTemplate:
    notification_type = NotificationType.SUPPORT_REPLY.value

    @staticmethod
    def render(context: dict) -> dict:
        # The admin console sends finished HTML
        return {"subject": context["subject"], "html": context["html"]}
