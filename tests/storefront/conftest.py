import pytest
from storefront.auth import SessionAuthSignal
from storefront.guest.store import GuestCartStore
from storefront.reconciliation.engine import CartReconciliationEngine
from storefront.remote.fake_adapter import FakeCartService


@pytest.fixture()
def guest_store(catalogue):
    return GuestCartStore(catalogue=catalogue)


@pytest.fixture()
def remote(catalogue):
    return FakeCartService(catalogue=catalogue)


@pytest.fixture()
def auth():
    """Auth signal that has resolved to an anonymous visitor."""
    signal = SessionAuthSignal()
    signal.logout()
    return signal


@pytest.fixture()
def engine(guest_store, remote, auth):
    return CartReconciliationEngine(guest=guest_store, remote=remote, auth=auth, settle_delay=0)
