"""Wiring: builds the pipeline's collaborators from ``Settings``.

Must run inside a storefront domain context: repositories are resolved from
the active domain. Adapters (carrier, email) are process-wide singletons so
their HTTP connection pools are reused across requests.
"""

from protean.utils.globals import current_domain

from storefront.carrier import get_carrier
from storefront.cart.cart import AbandonedCart
from storefront.cart.recovery import CartRecoverySweep
from storefront.config import Settings, get_settings
from storefront.email import get_email_adapter
from storefront.notification.dispatcher import NotificationDispatcher
from storefront.notification.notification import Notification
from storefront.orchestrator.orchestrator import FulfillmentOrchestrator
from storefront.orchestrator.reconciliation import ReconciliationScheduler
from storefront.order.order import Order
from storefront.order.returns import ReturnRequest
from storefront.shipping.catalog import WeightCatalog, load_catalog
from storefront.shipping.quote import CARRIER_NAME
from storefront.webhooks.idempotency import IdempotencyStore, ProcessedEvent
from storefront.webhooks.ingestion import WebhookIngestion
from storefront.webhooks.signatures import (
    CarrierSignatureVerifier,
    EmailSignatureVerifier,
    PaymentSignatureVerifier,
)

_catalog_instance = None


def get_catalog(settings: Settings) -> WeightCatalog:
    """Return the process-wide weight catalog (loaded once)."""
    global _catalog_instance
    if _catalog_instance is None:
        _catalog_instance = load_catalog(settings.SHIPPING_CATALOG_PATH)
    return _catalog_instance


def reset_catalog() -> None:
    global _catalog_instance
    _catalog_instance = None


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    return NotificationDispatcher(
        email=get_email_adapter(settings),
        notifications=current_domain.repository_for(Notification),
        site_url=settings.SITE_URL,
        carrier_name=CARRIER_NAME,
    )


def build_idempotency(settings: Settings) -> IdempotencyStore:
    return IdempotencyStore(
        current_domain.repository_for(ProcessedEvent),
        lease_seconds=settings.IDEMPOTENCY_LEASE_SECONDS,
        retention_days=settings.IDEMPOTENCY_RETENTION_DAYS,
    )


def build_orchestrator(settings: Settings | None = None) -> FulfillmentOrchestrator:
    settings = settings or get_settings()
    return FulfillmentOrchestrator(
        orders=current_domain.repository_for(Order),
        carrier=get_carrier(settings),
        dispatcher=build_dispatcher(settings),
        idempotency=build_idempotency(settings),
        carts=current_domain.repository_for(AbandonedCart),
        returns=current_domain.repository_for(ReturnRequest),
        catalog=get_catalog(settings),
        return_window_days=settings.RETURN_WINDOW_DAYS,
    )


def build_verifiers(settings: Settings) -> dict:
    tolerance = settings.WEBHOOK_TOLERANCE_SECONDS
    return {
        "payments": PaymentSignatureVerifier(settings.PAYMENT_WEBHOOK_SECRET, tolerance),
        "email": EmailSignatureVerifier(settings.EMAIL_WEBHOOK_SECRET, tolerance),
        "carrier": CarrierSignatureVerifier(settings.CARRIER_WEBHOOK_SECRET, tolerance),
    }


def build_ingestion(settings: Settings | None = None, orchestrator=None) -> WebhookIngestion:
    settings = settings or get_settings()
    return WebhookIngestion(build_verifiers(settings), orchestrator or build_orchestrator(settings))


def build_reconciliation(settings: Settings | None = None, orchestrator=None) -> ReconciliationScheduler:
    settings = settings or get_settings()
    return ReconciliationScheduler(
        orchestrator or build_orchestrator(settings),
        max_workers=settings.RECONCILIATION_WORKERS,
    )


def build_cart_sweep(settings: Settings | None = None) -> CartRecoverySweep:
    settings = settings or get_settings()
    return CartRecoverySweep(
        carts=current_domain.repository_for(AbandonedCart),
        dispatcher=build_dispatcher(settings),
        idle_minutes=settings.ABANDONED_CART_IDLE_MINUTES,
        batch_size=settings.ABANDONED_CART_BATCH_SIZE,
        site_url=settings.SITE_URL,
    )
