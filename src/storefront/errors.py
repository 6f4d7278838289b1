"""Error taxonomy for the fulfillment pipeline.

Verification and payload errors are raised at the ingestion boundary and
never reach the orchestrator. ``UpstreamUnavailable`` is the only retryable
class: it is surfaced to the caller so the provider re-delivers.
"""

from protean.exceptions import ValidationError


class StorefrontError(Exception):
    """Base class for pipeline errors that are not domain validation failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidSignature(StorefrontError):
    """The webhook signature (or its timestamp) could not be verified."""

    def __init__(self, provider: str, message: str = "Invalid webhook signature"):
        super().__init__(message)
        self.provider = provider


class InvalidPayload(StorefrontError):
    """A payload is malformed; retrying the same payload will not help."""


class DuplicateEvent(StorefrontError):
    """The event id was already processed (or is being processed right now)."""

    def __init__(self, provider: str, event_id: str, outcome: dict | None = None, in_flight: bool = False):
        super().__init__(f"Event {provider}:{event_id} already processed")
        self.provider = provider
        self.event_id = event_id
        self.outcome = outcome or {}
        self.in_flight = in_flight


class UpstreamUnavailable(StorefrontError):
    """A payment, carrier or email provider call failed or timed out."""

    retryable = True

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class NotificationFailed(UpstreamUnavailable):
    """An email could not be sent; a ``failed`` notification record was written."""

    def __init__(self, message: str, notification_id: str | None = None):
        super().__init__("email", message)
        self.notification_id = notification_id


class CarrierRejected(StorefrontError):
    """The carrier answered a shipment request with a non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnresolvableItem(StorefrontError):
    """A cart item has no weight data, so no shipping price can be quoted."""

    def __init__(self, product_id: str):
        super().__init__(f"No weight data for product {product_id}")
        self.product_id = product_id


class InvalidDeliveryMethod(StorefrontError):
    """The delivery method string is not one the carrier offers."""

    def __init__(self, method: str):
        super().__init__(f"Unknown delivery method: {method!r}")
        self.method = method


class StateConflict(ValidationError):
    """A transition was attempted from an unexpected current status."""

    def __init__(self, message: str, current_status: str | None = None, target_status: str | None = None):
        super().__init__({"status": [message]})
        self.message = message
        self.current_status = current_status
        self.target_status = target_status
