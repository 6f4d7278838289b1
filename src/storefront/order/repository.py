"""Repository for the Order aggregate.

Every status change goes through ``update_status``: a read-modify-write held
under a per-order lock, with an optimistic check on the status the caller saw.
On SQL providers the aggregate version check backs the same guarantee across
workers.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError

from storefront.domain import storefront
from storefront.errors import StateConflict
from storefront.order.order import Order, OrderStatus
from storefront.utils.locks import KeyedLocks
from storefront.utils.timestamps import as_utc

logger = structlog.get_logger(__name__)

_order_locks = KeyedLocks()
_payment_locks = KeyedLocks()


@storefront.repository(part_of=Order)
class OrderRepository:
    def create(self, order: Order) -> Order:
        """Persist a new order; a second order for the same payment reference is rejected."""
        if not order.payment_reference:
            self.add(order)
            return order

        with _payment_locks.hold(order.payment_reference):
            if self.find_by_payment_reference(order.payment_reference) is not None:
                raise ValidationError(
                    {"payment_reference": [f"An order for payment {order.payment_reference} already exists"]}
                )
            self.add(order)
        return order

    def get_by_id(self, order_id: str) -> Order:
        return self.get(order_id)

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        results = self._dao.query.filter(payment_reference=payment_reference).all().items
        return results[0] if results else None

    def find_by_shipment_id(self, shipment_id: str) -> Order | None:
        results = self._dao.query.filter(carrier_shipment_id=shipment_id).all().items
        return results[0] if results else None

    def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_status: OrderStatus | None = None,
        **fields,
    ) -> tuple[Order, OrderStatus, bool]:
        """Apply a transition atomically.

        Returns the stored order, the status it had before, and whether
        anything changed. ``fields`` are forwarded to ``Order.transition_to``.
        """
        return self.mutate(
            order_id,
            lambda order: order.transition_to(new_status, **fields),
            expected_status=expected_status,
        )

    def mutate(
        self,
        order_id: str,
        change: Callable[[Order], bool | None],
        expected_status: OrderStatus | None = None,
    ) -> tuple[Order, OrderStatus, bool]:
        """Load, change and store one order while holding its lock.

        ``change`` returns False when it decided nothing needed changing.
        """
        with _order_locks.hold(str(order_id)):
            order = self.get(order_id)
            previous = order.status_enum
            if expected_status is not None and previous != expected_status:
                raise StateConflict(
                    f"Order {order_id} is {previous.value}, expected {expected_status.value}",
                    current_status=previous.value,
                    target_status=None,
                )

            changed = change(order)
            if changed is False:
                return order, previous, False

            try:
                self.add(order)
            except ExpectedVersionError as exc:
                logger.warning("order_concurrent_update", order_id=str(order_id), error=str(exc))
                raise StateConflict(
                    f"Order {order_id} was modified concurrently",
                    current_status=previous.value,
                ) from exc
            return order, previous, True

    def list_by_filter(
        self,
        status: OrderStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        with_shipment: bool | None = None,
    ) -> list[Order]:
        query = self._dao.query
        if status is not None:
            query = query.filter(status=status.value)
        orders = query.all().items

        if created_from is not None:
            orders = [o for o in orders if o.created_at and as_utc(o.created_at) >= as_utc(created_from)]
        if created_to is not None:
            orders = [o for o in orders if o.created_at and as_utc(o.created_at) <= as_utc(created_to)]
        if with_shipment is not None:
            orders = [o for o in orders if bool(o.carrier_shipment_id) == with_shipment]
        return sorted(orders, key=lambda o: as_utc(o.created_at) if o.created_at else datetime.min.replace(tzinfo=UTC))
