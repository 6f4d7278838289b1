"""Tests for provider webhook signature verification."""

import pytest

from storefront.errors import InvalidSignature
from storefront.webhooks.signatures import (
    CarrierSignatureVerifier,
    EmailSignatureVerifier,
    PaymentSignatureVerifier,
)

BODY = b'{"id":"evt_1","type":"checkout.session.completed"}'
NOW = 1_772_000_000


def _clock():
    return NOW


class TestPaymentSignature:
    def setup_method(self):
        self.verifier = PaymentSignatureVerifier("pay_secret", tolerance_seconds=300, clock=_clock)

    def test_valid_signature(self):
        header = self.verifier.sign(BODY, NOW)
        self.verifier.verify(BODY, {"Stripe-Signature": header})

    def test_header_lookup_is_case_insensitive(self):
        self.verifier.verify(BODY, {"stripe-signature": self.verifier.sign(BODY, NOW)})

    def test_any_matching_v1_entry_is_accepted(self):
        good = self.verifier.sign(BODY, NOW).split("v1=")[1]
        header = f"t={NOW},v1={'0' * 64},v1={good}"
        self.verifier.verify(BODY, {"Stripe-Signature": header})

    def test_tampered_body(self):
        header = self.verifier.sign(BODY, NOW)
        with pytest.raises(InvalidSignature) as exc:
            self.verifier.verify(BODY + b" ", {"Stripe-Signature": header})
        assert exc.value.provider == "payments"

    def test_wrong_secret(self):
        header = PaymentSignatureVerifier("other", clock=_clock).sign(BODY, NOW)
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, {"Stripe-Signature": header})

    def test_stale_timestamp(self):
        header = self.verifier.sign(BODY, NOW - 301)
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, {"Stripe-Signature": header})

    def test_missing_header(self):
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, {})

    def test_missing_timestamp(self):
        digest = self.verifier.sign(BODY, NOW).split(",")[1]
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, {"Stripe-Signature": digest})

    def test_empty_secret_rejects_everything(self):
        verifier = PaymentSignatureVerifier("", clock=_clock)
        with pytest.raises(InvalidSignature):
            verifier.verify(BODY, {"Stripe-Signature": verifier.sign(BODY, NOW)})


class TestEmailSignature:
    SECRET = "whsec_ZW1haWwtc2VjcmV0LWtleQ=="

    def setup_method(self):
        self.verifier = EmailSignatureVerifier(self.SECRET, clock=_clock)

    def _headers(self, body=BODY, message_id="msg_1", timestamp=NOW):
        return {
            "svix-id": message_id,
            "svix-timestamp": str(timestamp),
            "svix-signature": self.verifier.sign(body, message_id, timestamp),
        }

    def test_valid_signature(self):
        self.verifier.verify(BODY, self._headers())

    def test_space_separated_signature_list(self):
        headers = self._headers()
        headers["svix-signature"] = "v1,bm90LWl0 " + headers["svix-signature"]
        self.verifier.verify(BODY, headers)

    def test_message_id_is_part_of_the_signature(self):
        headers = self._headers()
        headers["svix-id"] = "msg_2"
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, headers)

    def test_stale_timestamp(self):
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, self._headers(timestamp=NOW + 600))

    def test_missing_headers(self):
        headers = self._headers()
        del headers["svix-signature"]
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, headers)

    def test_secret_must_be_base64(self):
        verifier = EmailSignatureVerifier("whsec_***not base64***", clock=_clock)
        with pytest.raises(InvalidSignature):
            verifier.verify(BODY, {"svix-id": "m", "svix-timestamp": str(NOW), "svix-signature": "v1,abc"})


class TestCarrierSignature:
    def setup_method(self):
        self.verifier = CarrierSignatureVerifier("carrier_secret")

    def test_valid_signature(self):
        self.verifier.verify(BODY, {"X-Carrier-Signature": self.verifier.sign(BODY)})

    def test_prefixed_signature(self):
        self.verifier.verify(BODY, {"x-carrier-signature": "sha256=" + self.verifier.sign(BODY)})

    def test_mismatch(self):
        with pytest.raises(InvalidSignature):
            self.verifier.verify(BODY, {"X-Carrier-Signature": "deadbeef"})

    def test_old_body_still_verifies_without_timestamp(self):
        self.verifier.verify(BODY, {"X-Carrier-Signature": self.verifier.sign(BODY)})
