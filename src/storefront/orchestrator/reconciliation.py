"""Reconciliation scheduler: polls the carrier for orders still in flight.

Carrier push updates are unreliable, so a periodic run (cron via
``manage.py reconcile-shipments`` or ``POST /maintenance/reconcile``) asks the
carrier about every ``processing`` or ``shipped`` order that has a shipment
id. Each order is reconciled on its own: one failing lookup is logged and
counted, and the run moves on.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError

from storefront.domain import storefront
from storefront.errors import StorefrontError
from storefront.order.order import OrderStatus

logger = structlog.get_logger(__name__)

RECONCILED_STATUSES = (OrderStatus.PROCESSING, OrderStatus.SHIPPED)


@dataclass
class ReconciliationReport:
    checked: int = 0
    transitioned: int = 0
    failed: list[str] = field(default_factory=list)
    notification_errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "transitioned": self.transitioned,
            "failed": list(self.failed),
            "notification_errors": list(self.notification_errors),
        }


class ReconciliationScheduler:
    def __init__(self, orchestrator, max_workers: int = 1):
        self.orchestrator = orchestrator
        self.max_workers = max(1, max_workers)

    def due_orders(self) -> list[str]:
        order_ids = []
        for status in RECONCILED_STATUSES:
            order_ids.extend(
                str(order.id)
                for order in self.orchestrator.orders.list_by_filter(status=status, with_shipment=True)
            )
        return order_ids

    def _reconcile_one(self, order_id: str):
        try:
            return self.orchestrator.reconcile_shipment(order_id), None
        except (StorefrontError, ValidationError) as exc:
            logger.warning("reconciliation_order_failed", order_id=order_id, error=str(exc))
            return None, exc

    def run(self) -> ReconciliationReport:
        order_ids = self.due_orders()
        report = ReconciliationReport()
        logger.info("reconciliation_started", orders=len(order_ids))

        if self.max_workers == 1:
            results = [self._reconcile_one(order_id) for order_id in order_ids]
        else:

            def in_context(order_id):
                with storefront.domain_context():
                    return self._reconcile_one(order_id)

            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(in_context, order_ids))

        for order_id, (outcome, error) in zip(order_ids, results):
            report.checked += 1
            if error is not None:
                report.failed.append(order_id)
                continue
            if outcome.changed:
                report.transitioned += 1
            if outcome.notification_error:
                report.notification_errors.append(order_id)

        logger.info(
            "reconciliation_finished",
            checked=report.checked,
            transitioned=report.transitioned,
            failed=len(report.failed),
        )
        return report
