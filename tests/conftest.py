import os
from pathlib import Path

import pytest

_LAYER_MARKERS = {
    "/domain/": "domain",
    "/application/": "application",
    "/integration/": "integration",
    "/bdd/": "bdd",
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Protean config environment (memory providers unless overridden)",
    )


def pytest_sessionstart(session):
    """Initialize the storefront domain and push its context before collection.

    Test modules import aggregates at module level, so the domain must be
    registered before any of them is collected.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from storefront.domain import storefront

    storefront.init()
    storefront.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Mark tests by the layer directory they live in."""
    for item in items:
        path = str(Path(item.fspath))
        for fragment, marker in _LAYER_MARKERS.items():
            if fragment in path:
                item.add_marker(getattr(pytest.mark, marker))
                break
        if "/integration/" in path and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    from storefront.domain import storefront
    from storefront.utils.db import drop_db, setup_db

    setup_db(storefront)
    yield
    drop_db(storefront)


@pytest.fixture(autouse=True)
def reset_state():
    """Empty every store and forget cached settings after each test."""
    yield

    from protean import current_domain

    from storefront.config import reset_settings

    for provider in current_domain.providers.values():
        provider._data_reset()
    current_domain.event_store.store._data_reset()
    reset_settings()
