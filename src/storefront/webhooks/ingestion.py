"""Webhook ingestion: the boundary between provider HTTP calls and the orchestrator.

    raw body + headers → verify signature → parse typed event → orchestrator

Verification runs on the untouched request bytes and happens before anything
is parsed or stored; a rejected delivery leaves no trace except a log line.
Malformed payloads are rejected here too, so the orchestrator only ever sees
verified, typed events.
"""

from collections.abc import Mapping

import structlog

from storefront.errors import InvalidPayload
from storefront.utils.logging import bind_context, clear_context
from storefront.webhooks.parsing import PARSERS

logger = structlog.get_logger(__name__)


class WebhookIngestion:
    def __init__(self, verifiers: dict, orchestrator, parsers: dict | None = None):
        self.verifiers = verifiers
        self.orchestrator = orchestrator
        self.parsers = parsers or PARSERS

    def ingest(self, provider: str, raw_body: bytes, headers: Mapping[str, str]):
        """Verify, parse and hand one delivery to the orchestrator.

        Returns the orchestrator's ``EventResult``. Raises ``InvalidSignature``,
        ``InvalidPayload`` or whatever the orchestrator raised; in the last
        case the event is not recorded as processed.
        """
        verifier = self.verifiers.get(provider)
        parser = self.parsers.get(provider)
        if verifier is None or parser is None:
            raise InvalidPayload(f"Unknown webhook provider: {provider}")

        verifier.verify(raw_body, headers)
        event = parser(raw_body, headers)

        bind_context(provider=provider, event_id=event.event_id)
        try:
            logger.info("webhook_received", event_type=type(event).__name__)
            result = self.orchestrator.process_event(provider, event)
            if not result.duplicate:
                logger.info("webhook_processed")
            return result
        finally:
            clear_context()
