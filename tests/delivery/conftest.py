import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def delivery_bed():
    from delivery.domain import delivery

    bed = DomainFixture(delivery)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(delivery_bed):
    with delivery_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_adapters(monkeypatch):
    """Fresh fake providers and locks for every test; no provider is skip-tolerant or disabled."""
    from delivery.provider import reset_providers
    from delivery.services.locks import reset_locks

    monkeypatch.setenv("DELIVERY_PROVIDER_MODE", "fake")
    for name in ("DELIVERY_DISABLED_PROVIDERS", "DELIVERY_SKIP_TOLERANT_PROVIDERS"):
        monkeypatch.delenv(name, raising=False)
    reset_providers()
    reset_locks()
    yield
    reset_providers()
    reset_locks()
