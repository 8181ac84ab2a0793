import os
from pathlib import Path

import pytest

_LAYER_MARKERS = {
    "domain": pytest.mark.domain,
    "application": pytest.mark.application,
    "bdd": pytest.mark.bdd,
    "integration": pytest.mark.integration,
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay and keep provider adapters on their fakes.

    The delivery domain itself is initialized by the DomainFixture in
    tests/delivery/conftest.py.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("DELIVERY_PROVIDER_MODE", "fake")


def pytest_collection_modifyitems(config, items):
    """Mark each test with the layer its directory belongs to."""
    for item in items:
        parts = Path(item.fspath).parts
        layer = next((name for name in _LAYER_MARKERS if name in parts), None)
        if layer is None:
            continue
        item.add_marker(_LAYER_MARKERS[layer])
        # HTTP and projection tests spin up the app; treat them as slow unless marked fast
        if layer == "integration" and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)
