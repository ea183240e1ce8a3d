import os
from decimal import Decimal
from pathlib import Path

import pytest
from shared.catalogue import reset_catalogue, set_catalogue
from shared.catalogue.fake_adapter import InMemoryCatalogue
from shared.catalogue.port import ProductInfo


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture()
def catalogue():
    """A small jewellery catalogue, installed as the active catalogue."""
    products = InMemoryCatalogue(
        [
            ProductInfo(product_id="ring-001", name="Silver Ring", price=Decimal("25.00"), sku="RNG-001"),
            ProductInfo(product_id="chain-001", name="Gold Chain", price=Decimal("40.00"), sku="CHN-001"),
            ProductInfo(
                product_id="pearl-001",
                name="Pearl Earrings",
                price=Decimal("15.50"),
                image="https://cdn.example.com/pearl.jpg",
                sku="PRL-001",
            ),
        ]
    )
    set_catalogue(products)
    yield products
    reset_catalogue()


@pytest.fixture(scope="session")
def carts_bed():
    """Carts domain, initialised once for every test that needs the API."""
    from carts.domain import carts
    from protean.integrations.pytest import DomainFixture

    bed = DomainFixture(carts)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture()
def clean_carts(carts_bed):
    """Run inside the Carts domain context and wipe its stores afterwards."""
    from protean import current_domain

    with carts_bed.domain_context():
        yield
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture()
def restore_logging():
    """Put root handlers and structlog defaults back after a test configures logging."""
    import logging

    import structlog

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers, root.level = handlers, level
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
