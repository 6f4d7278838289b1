"""Webhook signature verification, one verifier per provider signing scheme.

Verifiers work on the raw request bytes; the body must not be parsed (or
re-serialized) before verification. Every failure raises
``InvalidSignature`` and nothing else, so the route can answer 401 without
touching any state.
"""

import base64
import binascii
import hashlib
import hmac
import time
from collections.abc import Callable, Mapping

import structlog

from storefront.errors import InvalidSignature

logger = structlog.get_logger(__name__)


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): v for k, v in headers.items()}


class SignatureVerifier:
    provider = "unknown"

    def __init__(self, secret: str, tolerance_seconds: int = 300, clock: Callable[[], float] = time.time):
        self.secret = secret or ""
        self.tolerance_seconds = tolerance_seconds
        self.clock = clock

    def _reject(self, reason: str) -> InvalidSignature:
        logger.warning("webhook_signature_rejected", provider=self.provider, reason=reason)
        return InvalidSignature(self.provider, f"Invalid {self.provider} webhook signature: {reason}")

    def _check_secret(self) -> None:
        # An unconfigured secret rejects everything rather than skipping verification
        if not self.secret:
            raise self._reject("no signing secret configured")

    def _check_timestamp(self, timestamp: str | None) -> None:
        try:
            sent_at = int(timestamp)
        except (TypeError, ValueError):
            raise self._reject("missing or malformed timestamp") from None
        if abs(self.clock() - sent_at) > self.tolerance_seconds:
            raise self._reject("timestamp outside tolerance")

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        raise NotImplementedError


class PaymentSignatureVerifier(SignatureVerifier):
    """``Stripe-Signature: t=<unix>,v1=<hex>`` over ``"<t>.<body>"``."""

    provider = "payments"
    header = "stripe-signature"

    def sign(self, raw_body: bytes, timestamp: int) -> str:
        payload = f"{timestamp}.".encode() + raw_body
        digest = hmac.new(self.secret.encode(), payload, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        self._check_secret()
        claimed = _lower_headers(headers).get(self.header)
        if not claimed:
            raise self._reject("missing signature header")

        timestamp = None
        candidates = []
        for part in claimed.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                candidates.append(value)
        self._check_timestamp(timestamp)
        if not candidates:
            raise self._reject("no v1 signature")

        expected = self.sign(raw_body, int(timestamp)).split("v1=", 1)[1]
        if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
            raise self._reject("signature mismatch")


class EmailSignatureVerifier(SignatureVerifier):
    """Three-header scheme: ``svix-id``, ``svix-timestamp``, ``svix-signature``.

    The signature list is space separated ``v1,<base64>`` entries over
    ``"<id>.<timestamp>.<body>"``, keyed with the base64 part of a
    ``whsec_`` secret.
    """

    provider = "email"

    def _key(self) -> bytes:
        secret = self.secret.removeprefix("whsec_")
        try:
            return base64.b64decode(secret)
        except (binascii.Error, ValueError):
            raise self._reject("signing secret is not valid base64") from None

    def sign(self, raw_body: bytes, message_id: str, timestamp: int) -> str:
        signed = f"{message_id}.{timestamp}.".encode() + raw_body
        digest = hmac.new(self._key(), signed, hashlib.sha256).digest()
        return "v1," + base64.b64encode(digest).decode()

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        self._check_secret()
        lowered = _lower_headers(headers)
        message_id = lowered.get("svix-id")
        timestamp = lowered.get("svix-timestamp")
        claimed = lowered.get("svix-signature")
        if not message_id or not claimed:
            raise self._reject("missing signature headers")
        self._check_timestamp(timestamp)

        expected = self.sign(raw_body, message_id, int(timestamp)).split(",", 1)[1]
        for entry in claimed.split():
            version, _, signature = entry.partition(",")
            if version == "v1" and hmac.compare_digest(expected, signature):
                return
        raise self._reject("signature mismatch")


class CarrierSignatureVerifier(SignatureVerifier):
    """Hex HMAC-SHA256 of the raw body in ``X-Carrier-Signature`` (optional ``sha256=`` prefix)."""

    provider = "carrier"
    header = "x-carrier-signature"

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode(), raw_body, hashlib.sha256).hexdigest()

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        self._check_secret()
        claimed = _lower_headers(headers).get(self.header, "")
        claimed = claimed.removeprefix("sha256=")
        if not claimed:
            raise self._reject("missing signature header")
        if not hmac.compare_digest(self.sign(raw_body), claimed):
            raise self._reject("signature mismatch")
