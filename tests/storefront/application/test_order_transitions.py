"""Application tests for admin-driven order status transitions."""

import pytest
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.errors import StateConflict
from storefront.notification.notification import NotificationType


class TestAdvanceOrderStatus:
    def test_processing(self, orchestrator, paid_order, email):
        email.reset()
        outcome = orchestrator.advance_order_status(str(paid_order.id), "processing")
        assert outcome.changed is True
        assert outcome.previous_status == "paid"
        assert outcome.status == "processing"
        assert len(email.sent_emails) == 1
        assert email.sent_emails[0]["to"] == "jana@example.com"

    def test_ship_with_supplied_shipment_id(self, orchestrator, paid_order, orders, email, notifications, carrier):
        email.reset()
        outcome = orchestrator.advance_order_status(str(paid_order.id), "shipped", shipment_id="PKT-123")

        order = orders.get_by_id(outcome.order_id)
        assert order.status == "shipped"
        assert order.shipped_at is not None
        assert order.carrier_shipment_id == "PKT-123"
        assert order.carrier_tracking_url == carrier.tracking_url("PKT-123")
        assert carrier.created == []

        assert len(email.sent_emails) == 1
        assert "PKT-123" in email.sent_emails[0]["html_body"]
        types = [n.notification_type for n in notifications.for_order(outcome.order_id)]
        assert types.count(NotificationType.SHIPPING_CONFIRMATION.value) == 1

    def test_ship_without_shipment_creates_one(self, orchestrator, paid_order, orders, carrier):
        orchestrator.advance_order_status(str(paid_order.id), "shipped")
        order = orders.get_by_id(str(paid_order.id))
        assert len(carrier.created) == 1
        assert order.carrier_shipment_id == "PKT-000001"

    def test_repeating_current_status_is_a_noop(self, orchestrator, paid_order, email):
        orchestrator.advance_order_status(str(paid_order.id), "processing")
        email.reset()
        outcome = orchestrator.advance_order_status(str(paid_order.id), "processing")
        assert outcome.changed is False
        assert email.sent_emails == []

    def test_backwards_move_is_a_conflict(self, orchestrator, paid_order, orders):
        orchestrator.advance_order_status(str(paid_order.id), "processing")
        with pytest.raises(StateConflict):
            orchestrator.advance_order_status(str(paid_order.id), "paid")
        assert orders.get_by_id(str(paid_order.id)).status == "processing"

    def test_expected_status_mismatch(self, orchestrator, paid_order):
        with pytest.raises(StateConflict) as exc:
            orchestrator.advance_order_status(str(paid_order.id), "processing", expected_status="new")
        assert exc.value.current_status == "paid"

    def test_unknown_status(self, orchestrator, paid_order):
        with pytest.raises(ValidationError):
            orchestrator.advance_order_status(str(paid_order.id), "teleported")

    def test_unknown_order(self, orchestrator):
        with pytest.raises(ObjectNotFoundError):
            orchestrator.advance_order_status("missing-order", "processing")

    def test_notification_failure_keeps_transition(self, orchestrator, paid_order, orders, email, notifications):
        email.configure(should_succeed=False, failure_reason="provider timeout")
        outcome = orchestrator.advance_order_status(str(paid_order.id), "processing")

        assert outcome.changed is True
        assert "provider timeout" in outcome.notification_error
        assert orders.get_by_id(str(paid_order.id)).status == "processing"
        failed = [n for n in notifications.for_order(str(paid_order.id)) if n.status == "failed"]
        assert len(failed) == 1
        assert failed[0].trigger_status == "processing"


class TestCancellation:
    def test_cancel_records_reason(self, orchestrator, paid_order, orders):
        outcome = orchestrator.advance_order_status(str(paid_order.id), "cancelled", reason="out of stock")
        assert outcome.status == "cancelled"
        assert orders.get_by_id(str(paid_order.id)).cancellation_reason == "out of stock"

    def test_cancel_withdraws_unshipped_parcel(self, orchestrator, paid_order, carrier):
        shipment = orchestrator.create_shipment(str(paid_order.id))
        orchestrator.advance_order_status(str(paid_order.id), "cancelled")
        assert carrier.cancelled == [shipment.shipment_id]

    def test_cancelled_order_cannot_ship(self, orchestrator, paid_order):
        orchestrator.advance_order_status(str(paid_order.id), "cancelled")
        with pytest.raises(StateConflict):
            orchestrator.advance_order_status(str(paid_order.id), "shipped", shipment_id="PKT-1")


class TestResend:
    def test_resend_current_status_email(self, orchestrator, paid_order, email):
        email.reset()
        result = orchestrator.resend_notification(str(paid_order.id))
        assert result["notification_type"] == NotificationType.ORDER_CONFIRMATION.value
        assert len(email.sent_emails) == 1

    def test_resend_after_shipping(self, orchestrator, paid_order, email):
        orchestrator.advance_order_status(str(paid_order.id), "shipped", shipment_id="PKT-77")
        result = orchestrator.resend_notification(str(paid_order.id))
        assert result["notification_type"] == NotificationType.SHIPPING_CONFIRMATION.value

    def test_resend_without_email(self, orchestrator):
        outcome = orchestrator.place_manual_order(
            items=[{"product_id": "tee-black", "quantity": 1, "unit_price": 49900}],
            amount_total=49900,
        )
        with pytest.raises(ValidationError):
            orchestrator.resend_notification(outcome.order_id)
