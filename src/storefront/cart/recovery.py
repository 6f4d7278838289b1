"""Abandoned-cart sweep: flags idle carts and sends one recovery email each.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via the maintenance API endpoint or ``manage.py sweep-carts``.
A cart is abandoned before its email goes out; ``email_sent_at`` is written
only after the provider accepted the message, so a failed send is visible
on the record and is not retried by the next sweep.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from storefront.errors import NotificationFailed
from storefront.utils.timestamps import utcnow

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    abandoned: int = 0
    emailed: int = 0
    failed: list[str] = field(default_factory=list)


class CartRecoverySweep:
    def __init__(self, carts, dispatcher, idle_minutes: int = 60, batch_size: int = 50, site_url: str = ""):
        self.carts = carts
        self.dispatcher = dispatcher
        self.idle_minutes = idle_minutes
        self.batch_size = batch_size
        self.site_url = site_url.rstrip("/")

    def _context(self, cart) -> dict:
        return {
            "customer_name": cart.customer_name,
            "items": [
                {
                    "product_id": line.get("product_id") or line.get("id") or "",
                    "name": line.get("name"),
                    "quantity": int(line.get("quantity") or 1),
                    "unit_price": int(line.get("unit_price") or line.get("price") or 0),
                    "size": line.get("size"),
                }
                for line in cart.item_list
            ],
            "total_amount": cart.total_amount,
            "currency": cart.currency,
            "cart_url": f"{self.site_url}/cart" if self.site_url else None,
        }

    def run(self, as_of: datetime | None = None) -> SweepReport:
        now = as_of or utcnow()
        cutoff = now - timedelta(minutes=self.idle_minutes)
        report = SweepReport()

        candidates = self.carts.sweep_candidates(cutoff, self.batch_size)
        logger.info("cart_sweep_started", cutoff=cutoff.isoformat(), candidates=len(candidates))

        for cart in candidates:
            if not cart.mark_abandoned(at=now):
                continue
            self.carts.add(cart)
            report.abandoned += 1

            try:
                self.dispatcher.send_cart_recovery(cart.customer_email, self._context(cart))
            except NotificationFailed as exc:
                report.failed.append(cart.session_id)
                logger.warning("cart_recovery_email_failed", session_id=cart.session_id, error=exc.message)
                continue

            cart.record_recovery_email(at=now)
            self.carts.add(cart)
            report.emailed += 1

        logger.info(
            "cart_sweep_finished",
            abandoned=report.abandoned,
            emailed=report.emailed,
            failed=len(report.failed),
        )
        return report
