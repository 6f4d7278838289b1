"""Fulfillment orchestrator: the single coordinator of the order pipeline.

Every external trigger (verified webhook, admin action, reconciliation poll)
ends up here. The orchestrator owns no state of its own: it is handed its
repositories, the carrier client, the notification dispatcher and the
idempotency store at construction time.

Ordering rules it enforces:
    - an order change is stored before any email about it is sent
    - a notification failure after a stored change is reported, never rolled back
    - shipment ids are stored only after the carrier accepted the shipment
    - a webhook event is recorded as processed only after its handling succeeded
"""

from dataclasses import asdict, dataclass, field
from datetime import timedelta

import structlog
from protean.exceptions import ValidationError

from storefront.cart.cart import session_locks
from storefront.carrier.port import CarrierPort, ShipmentRequest
from storefront.carrier.tracking import TrackingState, TrackingStatus
from storefront.errors import (
    CarrierRejected,
    DuplicateEvent,
    InvalidDeliveryMethod,
    NotificationFailed,
    StateConflict,
    UpstreamUnavailable,
)
from storefront.notification.dispatcher import NotificationDispatcher
from storefront.order.order import Order, OrderStatus, parse_status
from storefront.order.returns import ReturnRequest, ReturnStatus
from storefront.shipping.catalog import WeightCatalog
from storefront.shipping.quote import parse_delivery_method, shipment_weight
from storefront.utils.locks import KeyedLocks
from storefront.utils.timestamps import as_utc, utcnow
from storefront.webhooks.events import (
    CarrierStatusChanged,
    EmailStatusChanged,
    IgnoredEvent,
    PaymentConfirmed,
)

logger = structlog.get_logger(__name__)

_shipment_locks = KeyedLocks()
_return_locks = KeyedLocks()

_IN_CARRIER_HANDS = frozenset(
    {TrackingStatus.HANDED_TO_CARRIER, TrackingStatus.IN_TRANSIT, TrackingStatus.READY_FOR_PICKUP}
)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------
@dataclass
class OrderOutcome:
    """What an operation did to one order; ``notification_error`` is set when the email failed."""

    order_id: str
    status: str
    previous_status: str | None = None
    changed: bool = False
    created: bool = False
    notification_id: str | None = None
    notification_error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ShipmentOutcome:
    order_id: str
    shipment_id: str
    tracking_url: str | None
    created: bool

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReturnOutcome:
    return_id: str
    order_id: str
    status: str
    order_status: str
    notification_error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrackingView:
    order_id: str
    status: str
    status_text: str
    shipment_id: str | None
    tracking_url: str | None
    carrier_status: str
    carrier_status_text: str
    location: str | None = None
    estimated_delivery: str | None = None
    events: list[dict] = field(default_factory=list)


@dataclass
class EventResult:
    """Result of handling one verified webhook event."""

    duplicate: bool
    outcome: dict
    in_flight: bool = False


def _next_status(current: OrderStatus, carrier_status: TrackingStatus) -> OrderStatus | None:
    """One reconciliation step from the carrier's view; None when nothing applies."""
    if carrier_status in _IN_CARRIER_HANDS or carrier_status == TrackingStatus.DELIVERED:
        if current in (OrderStatus.PAID, OrderStatus.PROCESSING):
            return OrderStatus.SHIPPED
    if carrier_status == TrackingStatus.DELIVERED and current == OrderStatus.SHIPPED:
        return OrderStatus.DELIVERED
    if carrier_status == TrackingStatus.RETURNED and current in (
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    ):
        return OrderStatus.RETURNED
    return None


class FulfillmentOrchestrator:
    def __init__(
        self,
        orders,
        carrier: CarrierPort,
        dispatcher: NotificationDispatcher,
        idempotency,
        carts,
        returns,
        catalog: WeightCatalog,
        return_window_days: int = 14,
    ):
        self.orders = orders
        self.carrier = carrier
        self.dispatcher = dispatcher
        self.idempotency = idempotency
        self.carts = carts
        self.returns = returns
        self.catalog = catalog
        self.return_window = timedelta(days=return_window_days)

    # -------------------------------------------------------------------
    # Webhook events
    # -------------------------------------------------------------------
    def process_event(self, provider: str, event) -> EventResult:
        """Handle a verified event at most once per ``(provider, event_id)``."""
        try:
            self.idempotency.reserve(provider, event.event_id)
        except DuplicateEvent as exc:
            logger.info(
                "webhook_duplicate_delivery",
                provider=provider,
                event_id=event.event_id,
                in_flight=exc.in_flight,
            )
            return EventResult(duplicate=True, outcome=exc.outcome, in_flight=exc.in_flight)

        try:
            outcome = self.dispatch(event)
        except Exception:
            self.idempotency.release(provider, event.event_id)
            raise

        self.idempotency.mark_complete(provider, event.event_id, outcome)
        return EventResult(duplicate=False, outcome=outcome)

    def dispatch(self, event) -> dict:
        if isinstance(event, PaymentConfirmed):
            return self.confirm_payment(event).as_dict()
        if isinstance(event, EmailStatusChanged):
            return self.handle_email_status(event)
        if isinstance(event, CarrierStatusChanged):
            return self.handle_carrier_status(event)
        if isinstance(event, IgnoredEvent):
            logger.info("webhook_event_ignored", provider=event.provider, event_type=event.event_type)
            return {"ignored": True, "event_type": event.event_type}
        raise TypeError(f"Unsupported event: {type(event).__name__}")

    # -------------------------------------------------------------------
    # Order creation
    # -------------------------------------------------------------------
    def confirm_payment(self, event: PaymentConfirmed) -> OrderOutcome:
        """Create the order for a confirmed payment (exactly one per payment reference)."""
        existing = self.orders.find_by_payment_reference(event.payment_reference)
        if existing is not None:
            logger.info(
                "order_already_exists_for_payment",
                order_id=str(existing.id),
                payment_reference=event.payment_reference,
            )
            return OrderOutcome(order_id=str(existing.id), status=existing.status)

        delivery_method = None
        if event.delivery_method:
            try:
                delivery_method = parse_delivery_method(event.delivery_method).value
            except InvalidDeliveryMethod:
                # The payment already happened; keep the order and let an admin fix the method
                logger.warning(
                    "order_delivery_method_unrecognized",
                    payment_reference=event.payment_reference,
                    delivery_method=event.delivery_method,
                )

        status = OrderStatus.PAID if event.payment_verified else OrderStatus.NEW
        order = Order.create(
            items_data=[item.as_dict() for item in event.items],
            amount_total=event.amount_total,
            currency=event.currency,
            amount_shipping=event.amount_shipping,
            status=status,
            payment_reference=event.payment_reference,
            checkout_session_id=event.session_id,
            customer_email=event.customer_email,
            customer_name=event.customer_name,
            customer_phone=event.customer_phone,
            delivery_method=delivery_method,
            pickup_point_id=event.pickup_point_id,
            pickup_point_name=event.pickup_point_name,
            shipping_address=event.shipping_address,
        )
        try:
            self.orders.create(order)
        except ValidationError:
            existing = self.orders.find_by_payment_reference(event.payment_reference)
            if existing is None:
                raise
            return OrderOutcome(order_id=str(existing.id), status=existing.status)

        logger.info(
            "order_created",
            order_id=str(order.id),
            payment_reference=event.payment_reference,
            status=order.status,
            amount_total=order.amount_total,
        )
        if event.session_id:
            self._recover_cart(event.session_id)

        outcome = OrderOutcome(order_id=str(order.id), status=order.status, changed=True, created=True)
        self._notify(outcome, lambda: self.dispatcher.notify_order_placed(order))
        return outcome

    def place_manual_order(
        self,
        items: list[dict],
        amount_total: int,
        currency: str = "CZK",
        amount_shipping: int = 0,
        customer_email: str | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        delivery_method: str | None = None,
        pickup_point_id: str | None = None,
        pickup_point_name: str | None = None,
        shipping_address: dict | None = None,
    ) -> OrderOutcome:
        """Admin-created order without a confirmed payment; starts as ``new``."""
        order = Order.create(
            items_data=items,
            amount_total=amount_total,
            currency=currency,
            amount_shipping=amount_shipping,
            status=OrderStatus.NEW,
            customer_email=customer_email,
            customer_name=customer_name,
            customer_phone=customer_phone,
            delivery_method=parse_delivery_method(delivery_method).value if delivery_method else None,
            pickup_point_id=pickup_point_id,
            pickup_point_name=pickup_point_name,
            shipping_address=shipping_address,
        )
        self.orders.create(order)
        logger.info("manual_order_created", order_id=str(order.id), amount_total=amount_total)

        outcome = OrderOutcome(order_id=str(order.id), status=order.status, changed=True, created=True)
        self._notify(outcome, lambda: self.dispatcher.notify_order_placed(order))
        return outcome

    def _recover_cart(self, session_id: str) -> None:
        with session_locks.hold(session_id):
            cart = self.carts.find_by_session(session_id)
            if cart is None or not cart.mark_recovered():
                return
            self.carts.add(cart)
        logger.info("cart_recovered_by_order", session_id=session_id)

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def advance_order_status(
        self,
        order_id: str,
        target,
        shipment_id: str | None = None,
        tracking_url: str | None = None,
        reason: str | None = None,
        expected_status=None,
    ) -> OrderOutcome:
        """Apply an admin transition; re-applying the current status is a no-op."""
        target = target if isinstance(target, OrderStatus) else parse_status(target)
        if expected_status is not None and not isinstance(expected_status, OrderStatus):
            expected_status = parse_status(expected_status)

        order = self.orders.get_by_id(order_id)
        had_shipment = order.carrier_shipment_id

        if target == OrderStatus.SHIPPED and order.status_enum != OrderStatus.SHIPPED:
            if not order.can_transition_to(OrderStatus.SHIPPED):
                raise StateConflict(
                    f"Cannot transition from {order.status} to shipped",
                    current_status=order.status,
                    target_status=target.value,
                )
            if shipment_id and not tracking_url:
                tracking_url = self.carrier.tracking_url(shipment_id)
            if not shipment_id and not order.carrier_shipment_id:
                receipt = self.create_shipment(order_id)
                shipment_id, tracking_url = receipt.shipment_id, receipt.tracking_url

        order, previous, changed = self.orders.update_status(
            order_id,
            target,
            expected_status=expected_status,
            shipment_id=shipment_id,
            tracking_url=tracking_url,
            reason=reason,
        )
        outcome = OrderOutcome(
            order_id=str(order.id),
            status=order.status,
            previous_status=previous.value,
            changed=changed,
        )
        if not changed:
            logger.info("order_transition_noop", order_id=str(order.id), status=order.status)
            return outcome

        logger.info(
            "order_status_changed",
            order_id=str(order.id),
            from_status=previous.value,
            to_status=order.status,
            reason=reason,
        )
        if target == OrderStatus.CANCELLED and had_shipment and previous != OrderStatus.SHIPPED:
            self._cancel_shipment(str(order.id), had_shipment)

        self._notify(outcome, lambda: self.dispatcher.notify_transition(order, previous))
        return outcome

    def _notify(self, outcome: OrderOutcome, send) -> None:
        """Send after a stored change; a failure is recorded on the outcome."""
        try:
            notification = send()
        except NotificationFailed as exc:
            outcome.notification_error = exc.message
            return
        if notification is not None:
            outcome.notification_id = str(notification.id)

    # -------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------
    def _shipment_request(self, order: Order) -> ShipmentRequest:
        weight = shipment_weight([(item.product_id, item.quantity) for item in (order.items or [])], self.catalog)
        address = order.shipping_address
        return ShipmentRequest(
            order_id=str(order.id),
            recipient_name=order.customer_name or order.customer_email or "",
            recipient_email=order.customer_email,
            recipient_phone=order.customer_phone,
            value=order.amount_total,
            currency=order.currency,
            weight_kg=weight,
            pickup_point_id=order.pickup_point_id,
            address=(
                {
                    "street": address.street,
                    "city": address.city,
                    "postal_code": address.postal_code,
                    "country": address.country,
                }
                if address is not None
                else None
            ),
        )

    def create_shipment(self, order_id: str) -> ShipmentOutcome:
        """Create the carrier shipment for an order, once.

        The shipment id is stored only after the carrier accepted the
        request; a rejected or timed-out call leaves the order untouched.
        """
        with _shipment_locks.hold(str(order_id)):
            order = self.orders.get_by_id(order_id)
            if order.carrier_shipment_id:
                return ShipmentOutcome(
                    order_id=str(order.id),
                    shipment_id=order.carrier_shipment_id,
                    tracking_url=order.carrier_tracking_url,
                    created=False,
                )
            if order.is_terminal:
                raise StateConflict(
                    f"Cannot create a shipment for a {order.status} order",
                    current_status=order.status,
                )

            request = self._shipment_request(order)
            try:
                receipt = self.carrier.create_shipment(request)
            except (CarrierRejected, UpstreamUnavailable) as exc:
                logger.error("shipment_creation_failed", order_id=str(order.id), error=exc.message)
                raise

            self.orders.mutate(
                order_id,
                lambda o: o.attach_shipment(receipt.shipment_id, receipt.tracking_url),
            )
            logger.info(
                "shipment_created",
                order_id=str(order.id),
                shipment_id=receipt.shipment_id,
                weight_kg=str(request.weight_kg),
            )
            return ShipmentOutcome(
                order_id=str(order.id),
                shipment_id=receipt.shipment_id,
                tracking_url=receipt.tracking_url,
                created=True,
            )

    def _cancel_shipment(self, order_id: str, shipment_id: str) -> None:
        try:
            cancelled = self.carrier.cancel_shipment(shipment_id)
        except (CarrierRejected, UpstreamUnavailable) as exc:
            logger.warning("shipment_cancel_failed", order_id=order_id, shipment_id=shipment_id, error=exc.message)
            return
        logger.info("shipment_cancelled", order_id=order_id, shipment_id=shipment_id, accepted=cancelled)

    # -------------------------------------------------------------------
    # Carrier tracking
    # -------------------------------------------------------------------
    def apply_tracking(self, order_id: str, tracking: TrackingState) -> OrderOutcome:
        """Cache the carrier state on the order and follow it where the state machine allows."""

        def change(order: Order):
            order.record_tracking(
                status=tracking.status.value,
                status_text=tracking.status_text,
                location=tracking.location,
                estimated_delivery=tracking.estimated_delivery,
            )
            while True:
                target = _next_status(order.status_enum, tracking.status)
                if target is None:
                    break
                occurred_at = tracking.delivered_at if target == OrderStatus.DELIVERED else None
                order.transition_to(target, occurred_at=occurred_at, reason=f"carrier: {tracking.status.value}")

        order, previous, _ = self.orders.mutate(order_id, change)
        outcome = OrderOutcome(
            order_id=str(order.id),
            status=order.status,
            previous_status=previous.value,
            changed=order.status_enum != previous,
        )

        if tracking.status == TrackingStatus.CANCELLED:
            logger.warning(
                "carrier_reports_cancelled",
                order_id=str(order.id),
                shipment_id=tracking.shipment_id,
                status=order.status,
            )
        if not outcome.changed:
            return outcome

        logger.info(
            "order_status_reconciled",
            order_id=str(order.id),
            from_status=previous.value,
            to_status=order.status,
            carrier_status=tracking.status.value,
        )
        self._notify(outcome, lambda: self.dispatcher.notify_transition(order, previous))
        return outcome

    def reconcile_shipment(self, order_id: str) -> OrderOutcome:
        order = self.orders.get_by_id(order_id)
        if not order.carrier_shipment_id:
            return OrderOutcome(order_id=str(order.id), status=order.status, previous_status=order.status)
        tracking = self.carrier.get_tracking(order.carrier_shipment_id)
        return self.apply_tracking(order_id, tracking)

    def handle_carrier_status(self, event: CarrierStatusChanged) -> dict:
        order = self.orders.find_by_shipment_id(event.shipment_id)
        if order is None:
            logger.info("carrier_update_for_unknown_shipment", shipment_id=event.shipment_id)
            return {"matched": False, "shipment_id": event.shipment_id}
        return {"matched": True, **self.apply_tracking(str(order.id), event.tracking).as_dict()}

    def track_order(self, order_id: str) -> TrackingView:
        """Customer-facing lookup; an unreachable carrier degrades to ``unknown``."""
        order = self.orders.get_by_id(order_id)
        if order.carrier_shipment_id:
            try:
                tracking = self.carrier.get_tracking(order.carrier_shipment_id)
            except UpstreamUnavailable as exc:
                logger.warning("tracking_lookup_degraded", order_id=str(order.id), error=exc.message)
                tracking = TrackingState.unknown(order.carrier_shipment_id)
        else:
            tracking = TrackingState.unknown("")

        return TrackingView(
            order_id=str(order.id),
            status=order.status,
            status_text=order.status_text,
            shipment_id=order.carrier_shipment_id,
            tracking_url=order.carrier_tracking_url,
            carrier_status=tracking.status.value,
            carrier_status_text=tracking.status_text,
            location=tracking.location,
            estimated_delivery=tracking.estimated_delivery.isoformat() if tracking.estimated_delivery else None,
            events=[
                {
                    "occurred_at": e.occurred_at.isoformat() if e.occurred_at else None,
                    "status": e.status.value,
                    "status_text": e.status_text,
                    "location": e.location,
                }
                for e in tracking.events
            ],
        )

    # -------------------------------------------------------------------
    # Email provider events and admin email actions
    # -------------------------------------------------------------------
    def handle_email_status(self, event: EmailStatusChanged) -> dict:
        applied = self.dispatcher.apply_delivery_status(event.provider_message_id, event.status, event.occurred_at)
        return {
            "provider_message_id": event.provider_message_id,
            "status": event.status.value,
            "applied": applied,
        }

    def resend_notification(self, order_id: str) -> dict:
        order = self.orders.get_by_id(order_id)
        if not order.customer_email:
            raise ValidationError({"customer_email": [f"Order {order_id} has no customer email"]})
        notification = self.dispatcher.notify_current_status(order)
        logger.info("notification_resent", order_id=str(order.id), notification_id=str(notification.id))
        return {
            "order_id": str(order.id),
            "notification_id": str(notification.id),
            "notification_type": notification.notification_type,
        }

    def compose_support_reply(self, to: str, subject: str, html: str, order_id: str | None = None, attachments=None):
        if order_id:
            self.orders.get_by_id(order_id)
        return self.dispatcher.compose(to, subject, html, order_id=order_id, attachments=attachments)

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def request_return(
        self,
        order_id: str,
        customer_email: str,
        reason: str,
        description: str | None = None,
    ) -> ReturnRequest:
        """Open a return request for a delivered order; the order itself is not changed."""
        with _return_locks.hold(str(order_id)):
            order = self.orders.get_by_id(order_id)
            if order.status_enum != OrderStatus.DELIVERED:
                raise ValidationError({"order": ["Only delivered orders can be returned"]})
            if (order.customer_email or "").strip().lower() != (customer_email or "").strip().lower():
                raise ValidationError({"customer_email": ["Email does not match the order"]})
            delivered_at = as_utc(order.delivered_at)
            if delivered_at is None or utcnow() > delivered_at + self.return_window:
                raise ValidationError({"order": ["The return window for this order has closed"]})
            if self.returns.open_for_order(order_id):
                raise ValidationError({"order": ["A return request for this order already exists"]})

            request = ReturnRequest.create(
                order_id=str(order.id),
                customer_email=customer_email.strip(),
                reason=reason,
                description=description,
                items=order.items_snapshot(),
            )
            self.returns.add(request)

        logger.info("return_requested", return_id=str(request.id), order_id=str(order.id), reason=reason)
        return request

    def resolve_return(self, return_id: str, approve: bool, note: str | None = None) -> ReturnOutcome:
        """Approve (order becomes ``returned``) or reject a pending return request."""
        with _return_locks.hold(f"return:{return_id}"):
            request = self.returns.get(return_id)
            order = self.orders.get_by_id(request.order_id)
            if approve and order.status_enum != OrderStatus.RETURNED:
                if not order.can_transition_to(OrderStatus.RETURNED, via_return=True):
                    raise StateConflict(
                        f"Order {order.id} is {order.status} and cannot be returned",
                        current_status=order.status,
                        target_status=OrderStatus.RETURNED.value,
                    )

            if approve:
                request.approve(note)
            else:
                request.reject(note)
            self.returns.add(request)

        logger.info("return_resolved", return_id=str(request.id), order_id=str(order.id), status=request.status)
        outcome = ReturnOutcome(
            return_id=str(request.id),
            order_id=str(order.id),
            status=request.status,
            order_status=order.status,
        )
        if request.status != ReturnStatus.APPROVED.value:
            return outcome

        order, previous, changed = self.orders.update_status(
            str(order.id),
            OrderStatus.RETURNED,
            via_return=True,
            reason=f"return {request.id} approved",
        )
        outcome.order_status = order.status
        if changed:
            logger.info(
                "order_status_changed",
                order_id=str(order.id),
                from_status=previous.value,
                to_status=order.status,
                reason="return approved",
            )
            try:
                self.dispatcher.notify_transition(order, previous)
            except NotificationFailed as exc:
                outcome.notification_error = exc.message
        return outcome
