"""Resend email adapter: transactional email over the Resend REST API."""

import base64

import httpx
import structlog

from storefront.email.port import Attachment, EmailPort
from storefront.errors import UpstreamUnavailable
from storefront.utils.http import ProviderHttpClient

logger = structlog.get_logger(__name__)


class ResendEmailAdapter(EmailPort):
    name = "resend"

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com",
        timeout: float = 15.0,
        max_retries: int = 1,
        transport: httpx.BaseTransport | None = None,
    ):
        self.sender = sender
        self._http = ProviderHttpClient(
            provider=self.name,
            base_url=api_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            max_retries=max_retries,
            backoff_seconds=0.5,
            transport=transport,
        )

    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: list[Attachment] | None = None,
    ) -> str:
        payload = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if attachments:
            payload["attachments"] = [
                {
                    "filename": a.filename,
                    "content": base64.b64encode(a.content).decode("ascii"),
                    "content_type": a.content_type,
                }
                for a in attachments
            ]

        response = self._http.request("POST", "/emails", json=payload)
        if not response.is_success:
            logger.warning("email_provider_refused", status_code=response.status_code, body=response.text[:300])
            raise UpstreamUnavailable(self.name, f"Resend refused the message: HTTP {response.status_code}")

        message_id = response.json().get("id")
        if not message_id:
            raise UpstreamUnavailable(self.name, "Resend response did not contain a message id")
        return message_id
