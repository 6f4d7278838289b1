"""Integration tests for the provider webhook endpoints."""

import asyncio

from protean import current_domain

from storefront.order.order import Order


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


class TestPaymentWebhook:
    def test_valid_signature_is_acknowledged(self, client, payment_body, payment_headers):
        body = payment_body()
        resp = client.post("/webhooks/payments", content=body, headers=payment_headers(body))
        assert resp.status_code == 200
        data = resp.json()
        assert data["received"] is True
        assert data["duplicate"] is False
        assert data["outcome"]["status"] == "paid"
        assert len(_orders()) == 1

    def test_invalid_signature_is_401(self, client, payment_body):
        resp = client.post(
            "/webhooks/payments",
            content=payment_body(),
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert resp.status_code == 401
        assert _orders() == []

    def test_duplicate_delivery(self, client, email, payment_body, payment_headers):
        body = payment_body()
        client.post("/webhooks/payments", content=body, headers=payment_headers(body))
        resp = client.post("/webhooks/payments", content=body, headers=payment_headers(body))
        assert resp.status_code == 200
        assert resp.json()["duplicate"] is True
        assert len(_orders()) == 1
        assert len(email.sent_emails) == 1

    def test_malformed_payload_is_400(self, client, payment_headers):
        body = b'{"id": "evt_x", "type": "checkout.session.completed", "data": {"object": {"id": "cs"}}}'
        resp = client.post("/webhooks/payments", content=body, headers=payment_headers(body))
        assert resp.status_code == 400


class TestEmailWebhook:
    def test_delivery_event(self, client, paid_order, email, email_delivery):
        body, headers = email_delivery("email.delivered", email.sent_emails[0]["message_id"])
        resp = client.post("/webhooks/email", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["outcome"]["applied"] is True

    def test_missing_headers_is_401(self, client, email_delivery):
        body, _ = email_delivery("email.delivered", "re_1")
        assert client.post("/webhooks/email", content=body).status_code == 401


class TestCarrierWebhook:
    def test_unknown_shipment_is_acknowledged(self, client, carrier_delivery):
        body, headers = carrier_delivery({"packetId": "PKT-404", "status": "in_transit"})
        resp = client.post("/webhooks/carrier", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["outcome"]["matched"] is False

    def test_failed_email_is_reported_not_raised(self, client, orchestrator, paid_order, email, carrier_delivery):
        orchestrator.advance_order_status(str(paid_order.id), "shipped", shipment_id="PKT-1")
        body, headers = carrier_delivery({"packetId": "PKT-1", "status": "delivered"})
        email.configure(should_succeed=False)

        resp = client.post("/webhooks/carrier", content=body, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["outcome"]["notification_error"]


class TestIngestionThread:
    def test_ingestion_runs_off_the_event_loop(self, client, ingestion, monkeypatch, payment_body, payment_headers):
        seen = {}
        ingest = ingestion.ingest

        def recording_ingest(provider, raw_body, headers):
            try:
                asyncio.get_running_loop()
                seen["on_loop"] = True
            except RuntimeError:
                seen["on_loop"] = False
            seen["orders_before"] = len(_orders())
            return ingest(provider, raw_body, headers)

        monkeypatch.setattr(ingestion, "ingest", recording_ingest)
        body = payment_body()

        resp = client.post("/webhooks/payments", content=body, headers=payment_headers(body))

        assert resp.status_code == 200
        assert seen == {"on_loop": False, "orders_before": 0}
        assert len(_orders()) == 1
