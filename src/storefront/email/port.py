"""Email port: abstract interface for the transactional email provider."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class EmailPort(ABC):
    """Abstract interface for email dispatch adapters."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: list[Attachment] | None = None,
    ) -> str:
        """Send an email message and return the provider's message id.

        Raises:
            UpstreamUnavailable: the provider refused the message or timed out.
        """
        ...
