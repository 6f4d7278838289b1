"""Fake email adapter: records sent emails for testing."""

from uuid import uuid4

from storefront.email.port import Attachment, EmailPort
from storefront.errors import UpstreamUnavailable


class FakeEmailAdapter(EmailPort):
    """Email adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: list[Attachment] | None = None,
    ) -> str:
        if not self.should_succeed:
            raise UpstreamUnavailable("email", self.failure_reason)

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "html_body": html_body,
                "attachments": [a.filename for a in (attachments or [])],
            }
        )
        return message_id

    def sent_to(self, to: str) -> list[dict]:
        return [email for email in self.sent_emails if email["to"] == to]

    def reset(self):
        """Clear sent emails (useful between tests)."""
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
