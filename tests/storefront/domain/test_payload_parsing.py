"""Tests for provider payload parsing into typed events."""

import hashlib
import json

import pytest

from storefront.carrier.tracking import TrackingStatus
from storefront.errors import InvalidPayload
from storefront.notification.notification import NotificationStatus
from storefront.webhooks.events import CarrierStatusChanged, EmailStatusChanged, IgnoredEvent, PaymentConfirmed
from storefront.webhooks.parsing import parse_carrier_event, parse_email_event, parse_payment_event


def _payment(session: dict, event_type="checkout.session.completed", event_id="evt_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": session}}).encode()


class TestPaymentEvents:
    def test_checkout_session(self, payment_body):
        event = parse_payment_event(payment_body())
        assert isinstance(event, PaymentConfirmed)
        assert event.event_id == "evt_001"
        assert event.payment_reference == "cs_test_001"
        assert event.amount_total == 107700
        assert event.amount_shipping == 7900
        assert event.currency == "CZK"
        assert event.payment_verified is True
        assert event.customer_email == "jana@example.com"
        assert event.customer_name == "Jana Novakova"
        assert event.session_id == "sess-001"
        assert event.delivery_method == "pickup"
        assert event.pickup_point_id == "PP-1234"
        assert event.pickup_point_name == "Z-Point Praha 1"

    def test_major_unit_price_becomes_minor_units(self, payment_body):
        event = parse_payment_event(payment_body())
        assert [(i.product_id, i.quantity, i.unit_price) for i in event.items] == [
            ("tee-black", 1, 49900),
            ("tee-black", 1, 49900),
        ]
        assert event.items[0].size == "M"

    def test_session_line_items_fallback(self):
        body = _payment(
            {
                "id": "cs_2",
                "amount_total": 3000,
                "currency": "eur",
                "line_items": {"data": [{"price": {"product": "poster-a2", "unit_amount": 1500}, "quantity": 2}]},
            }
        )
        event = parse_payment_event(body)
        assert event.items[0].product_id == "poster-a2"
        assert event.items[0].unit_price == 1500
        assert event.currency == "EUR"
        assert event.amount_shipping == 0

    def test_amount_total_per_line_is_split_by_quantity(self):
        body = _payment(
            {
                "id": "cs_3",
                "amount_total": 2000,
                "currency": "czk",
                "metadata": {"items": [{"id": "tee-white", "qty": 4, "amount_total": 2000}]},
            }
        )
        assert parse_payment_event(body).items[0].unit_price == 500

    def test_shipping_address(self):
        body = _payment(
            {
                "id": "cs_4",
                "amount_total": 100,
                "currency": "czk",
                "metadata": {"items": [{"product_id": "tee-black", "unit_price": 100}]},
                "shipping_details": {
                    "address": {"line1": "Vinohradska 1", "line2": "byt 3", "city": "Praha", "postal_code": "12000"}
                },
            }
        )
        address = parse_payment_event(body).shipping_address
        assert address["street"] == "Vinohradska 1 byt 3"
        assert address["city"] == "Praha"
        assert address["postal_code"] == "12000"

    def test_async_success_is_a_confirmation(self, payment_body):
        event = parse_payment_event(payment_body(event_type="checkout.session.async_payment_succeeded"))
        assert isinstance(event, PaymentConfirmed)

    def test_unpaid_session_is_not_verified(self, payment_body):
        assert parse_payment_event(payment_body(payment_status="unpaid")).payment_verified is False

    @pytest.mark.parametrize("event_type", ["charge.refunded", "customer.created", "checkout.session.expired"])
    def test_other_types_are_ignored(self, payment_body, event_type):
        event = parse_payment_event(payment_body(event_type=event_type))
        assert isinstance(event, IgnoredEvent)
        assert event.provider == "payments"
        assert event.event_type == event_type

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[1, 2, 3]",
            b'{"type": "checkout.session.completed"}',
            _payment({"id": "cs_x", "amount_total": 100, "currency": "czk"}),
            _payment({"id": "cs_x", "currency": "czk", "metadata": {"items": [{"id": "a", "unit_price": 1}]}}),
            _payment({"id": "cs_x", "amount_total": -5, "currency": "czk", "metadata": {"items": "[{]"}}),
            _payment({"id": "cs_x", "amount_total": 100, "currency": "czk", "metadata": {"items": [{"id": "a"}]}}),
            _payment(
                {"id": "cs_x", "amount_total": 100, "currency": "czk", "metadata": {"items": [{"id": "a", "qty": 0}]}}
            ),
            _payment({"id": "cs_x", "amount_total": 100, "currency": "czk", "metadata": "items=a"}),
            _payment({"id": "cs_x", "amount_total": 100, "currency": "czk", "metadata": {"items": ["tee-black"]}}),
            json.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": ["cs_x"]}).encode(),
            _payment(["cs_x"]),
        ],
        ids=[
            "not-json",
            "not-object",
            "no-id",
            "no-items",
            "no-amount",
            "bad-items-json",
            "no-price",
            "zero-qty",
            "metadata-not-object",
            "item-not-object",
            "data-not-object",
            "session-not-object",
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(InvalidPayload):
            parse_payment_event(raw)


class TestEmailEvents:
    def test_delivered(self, email_delivery):
        body, headers = email_delivery("email.delivered", "re_123", svix_id="msg_42")
        event = parse_email_event(body, headers)
        assert isinstance(event, EmailStatusChanged)
        assert event.event_id == "msg_42"
        assert event.provider_message_id == "re_123"
        assert event.status == NotificationStatus.DELIVERED
        assert event.recipient == "jana@example.com"
        assert event.occurred_at is not None

    @pytest.mark.parametrize(
        "event_type,status",
        [("email.opened", NotificationStatus.OPENED), ("email.bounced", NotificationStatus.BOUNCED)],
    )
    def test_status_mapping(self, email_delivery, event_type, status):
        body, headers = email_delivery(event_type, "re_1")
        assert parse_email_event(body, headers).status == status

    def test_other_types_are_ignored(self, email_delivery):
        body, headers = email_delivery("email.clicked", "re_1")
        event = parse_email_event(body, headers)
        assert isinstance(event, IgnoredEvent)
        assert event.provider == "email"

    def test_body_id_when_header_missing(self):
        body = json.dumps({"id": "evt_email", "type": "email.delivered", "data": {"email_id": "re_9"}}).encode()
        assert parse_email_event(body, {}).event_id == "evt_email"

    def test_no_id_anywhere(self):
        body = json.dumps({"type": "email.delivered", "data": {}}).encode()
        with pytest.raises(InvalidPayload):
            parse_email_event(body, {})

    @pytest.mark.parametrize("data", ["re_1", ["re_1"], 42], ids=["string", "list", "number"])
    def test_data_must_be_an_object(self, data):
        body = json.dumps({"type": "email.delivered", "data": data}).encode()
        with pytest.raises(InvalidPayload):
            parse_email_event(body, {"svix-id": "msg_1"})


class TestCarrierEvents:
    def test_nested_data_payload(self):
        raw = json.dumps({"event_id": "c-1", "data": {"packetId": "PKT-123", "status": "delivered"}}).encode()
        event = parse_carrier_event(raw)
        assert isinstance(event, CarrierStatusChanged)
        assert event.event_id == "c-1"
        assert event.shipment_id == "PKT-123"
        assert event.tracking.status == TrackingStatus.DELIVERED

    def test_missing_event_id_hashes_the_body(self):
        raw = json.dumps({"barcode": "PKT-9", "statusCode": 2}).encode()
        event = parse_carrier_event(raw)
        assert event.event_id == hashlib.sha256(raw).hexdigest()
        assert parse_carrier_event(raw).event_id == event.event_id

    def test_missing_shipment_id(self):
        with pytest.raises(InvalidPayload):
            parse_carrier_event(b'{"status": "delivered"}')
