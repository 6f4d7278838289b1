import json
import time

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from storefront.carrier.fake_adapter import FakeCarrier
from storefront.cart.cart import AbandonedCart
from storefront.email.fake_email import FakeEmailAdapter
from storefront.notification.dispatcher import NotificationDispatcher
from storefront.notification.notification import Notification
from storefront.orchestrator.orchestrator import FulfillmentOrchestrator
from storefront.order.order import Order
from storefront.order.returns import ReturnRequest
from storefront.shipping.catalog import WeightCatalog
from storefront.webhooks.idempotency import IdempotencyStore, ProcessedEvent
from storefront.webhooks.ingestion import WebhookIngestion
from storefront.webhooks.signatures import (
    CarrierSignatureVerifier,
    EmailSignatureVerifier,
    PaymentSignatureVerifier,
)

PAYMENT_SECRET = "pay_test_secret"
EMAIL_SECRET = "whsec_ZW1haWwtc2VjcmV0LWtleQ=="  # base64("email-secret-key")
CARRIER_SECRET = "carrier_test_secret"
SITE_URL = "https://shop.example.com"

CATALOG_DATA = {
    "categories": {"t-shirts": 0.25, "hoodies": 0.8},
    "products": {
        "tee-black": {"category": "t-shirts"},
        "tee-white": {"category": "t-shirts"},
        "hoodie-grey": {"category": "hoodies", "dimensions_cm": [35, 30, 8]},
        "poster-a2": {"weight_kg": 0.3, "dimensions_cm": [60, 10, 10]},
        "kettlebell": {"weight_kg": 7},
        "mystery-box": {},
    },
}

DEFAULT_ITEMS = [
    {"productId": "tee-black", "name": "Black Tee", "quantity": 1, "price": 499, "size": "M"},
    {"productId": "tee-black", "name": "Black Tee", "quantity": 1, "price": 499, "size": "M"},
]


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def catalog():
    return WeightCatalog.from_dict(CATALOG_DATA)


@pytest.fixture()
def carrier():
    return FakeCarrier()


@pytest.fixture()
def email():
    return FakeEmailAdapter()


@pytest.fixture()
def dispatcher(email):
    return NotificationDispatcher(email, current_domain.repository_for(Notification), site_url=SITE_URL)


@pytest.fixture()
def idempotency():
    return IdempotencyStore(current_domain.repository_for(ProcessedEvent), lease_seconds=300, retention_days=30)


@pytest.fixture()
def orchestrator(carrier, dispatcher, idempotency, catalog):
    return FulfillmentOrchestrator(
        orders=current_domain.repository_for(Order),
        carrier=carrier,
        dispatcher=dispatcher,
        idempotency=idempotency,
        carts=current_domain.repository_for(AbandonedCart),
        returns=current_domain.repository_for(ReturnRequest),
        catalog=catalog,
        return_window_days=14,
    )


@pytest.fixture()
def verifiers():
    return {
        "payments": PaymentSignatureVerifier(PAYMENT_SECRET),
        "email": EmailSignatureVerifier(EMAIL_SECRET),
        "carrier": CarrierSignatureVerifier(CARRIER_SECRET),
    }


@pytest.fixture()
def ingestion(verifiers, orchestrator):
    return WebhookIngestion(verifiers, orchestrator)


@pytest.fixture()
def orders():
    return current_domain.repository_for(Order)


@pytest.fixture()
def notifications():
    return current_domain.repository_for(Notification)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------
def build_payment_body(
    event_id="evt_001",
    payment_reference="cs_test_001",
    items=None,
    amount_total=107700,
    payment_status="paid",
    customer_email="jana@example.com",
    delivery_method="pickup",
    session_id="sess-001",
    event_type="checkout.session.completed",
) -> bytes:
    session = {
        "id": payment_reference,
        "object": "checkout.session",
        "amount_total": amount_total,
        "currency": "czk",
        "payment_status": payment_status,
        "customer_details": {"email": customer_email, "name": "Jana Novakova", "phone": "+420600100200"},
        "shipping_cost": {"amount_total": 7900},
        "metadata": {
            "items": json.dumps(items if items is not None else DEFAULT_ITEMS),
            "session_id": session_id,
            "delivery_method": delivery_method,
            "packeta_point_id": "PP-1234",
            "packeta_point_name": "Z-Point Praha 1",
        },
    }
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": session}}).encode()


@pytest.fixture()
def payment_body():
    return build_payment_body


@pytest.fixture()
def payment_headers():
    def make(raw_body: bytes, timestamp: int | None = None) -> dict:
        ts = timestamp if timestamp is not None else int(time.time())
        return {"Stripe-Signature": PaymentSignatureVerifier(PAYMENT_SECRET).sign(raw_body, ts)}

    return make


@pytest.fixture()
def email_delivery():
    """Signed email-provider webhook: returns ``(raw_body, headers)``."""

    def make(event_type: str, message_id: str, svix_id: str = "msg_001") -> tuple[bytes, dict]:
        body = json.dumps(
            {
                "type": event_type,
                "created_at": "2026-03-02T10:00:00.000Z",
                "data": {"email_id": message_id, "to": ["jana@example.com"], "subject": "Order"},
            }
        ).encode()
        ts = int(time.time())
        headers = {
            "svix-id": svix_id,
            "svix-timestamp": str(ts),
            "svix-signature": EmailSignatureVerifier(EMAIL_SECRET).sign(body, svix_id, ts),
        }
        return body, headers

    return make


@pytest.fixture()
def carrier_delivery():
    def make(payload: dict) -> tuple[bytes, dict]:
        body = json.dumps(payload).encode()
        return body, {"X-Carrier-Signature": CarrierSignatureVerifier(CARRIER_SECRET).sign(body)}

    return make


@pytest.fixture()
def paid_order(orchestrator, orders, payment_body):
    """A paid order created through the ingestion path; emails are left in the fake outbox."""
    from storefront.webhooks.parsing import parse_payment_event

    outcome = orchestrator.confirm_payment(parse_payment_event(payment_body()))
    return orders.get_by_id(outcome.order_id)
