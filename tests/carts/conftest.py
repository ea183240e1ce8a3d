import pytest


@pytest.fixture(autouse=True)
def _ctx(clean_carts, catalogue):
    yield
