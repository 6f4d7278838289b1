"""FastAPI dependencies: one orchestrator per request, built from settings.

Declared ``async`` so they resolve in the request task, where the domain
context pushed by the middleware is active. Tests replace these through
``app.dependency_overrides``.
"""

from storefront.config import get_settings
from storefront.orchestrator.bootstrap import (
    build_cart_sweep,
    build_idempotency,
    build_ingestion,
    build_orchestrator,
    build_reconciliation,
    get_catalog,
)


async def get_orchestrator():
    return build_orchestrator(get_settings())


async def get_ingestion():
    settings = get_settings()
    return build_ingestion(settings, build_orchestrator(settings))


async def get_reconciliation():
    return build_reconciliation(get_settings())


async def get_cart_sweep():
    return build_cart_sweep(get_settings())


async def get_idempotency():
    return build_idempotency(get_settings())


async def get_weight_catalog():
    return get_catalog(get_settings())
