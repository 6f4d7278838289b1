import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain

from storefront.api import (
    cart_router,
    maintenance_router,
    notification_router,
    order_router,
    returns_router,
    shipping_router,
    webhook_router,
)
from storefront.api.dependencies import (
    get_cart_sweep,
    get_idempotency,
    get_ingestion,
    get_orchestrator,
    get_reconciliation,
    get_weight_catalog,
)
from storefront.api.errors import register_error_handlers
from storefront.cart.cart import AbandonedCart
from storefront.cart.recovery import CartRecoverySweep
from storefront.orchestrator.reconciliation import ReconciliationScheduler


@pytest.fixture()
def client(orchestrator, ingestion, idempotency, dispatcher, catalog):
    """A minimal FastAPI app wired to the test collaborators."""
    app = FastAPI()
    for router in (
        webhook_router,
        order_router,
        returns_router,
        cart_router,
        shipping_router,
        notification_router,
        maintenance_router,
    ):
        app.include_router(router)
    register_error_handlers(app)

    sweep = CartRecoverySweep(current_domain.repository_for(AbandonedCart), dispatcher, idle_minutes=0)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_ingestion] = lambda: ingestion
    app.dependency_overrides[get_reconciliation] = lambda: ReconciliationScheduler(orchestrator)
    app.dependency_overrides[get_cart_sweep] = lambda: sweep
    app.dependency_overrides[get_idempotency] = lambda: idempotency
    app.dependency_overrides[get_weight_catalog] = lambda: catalog
    return TestClient(app)
