"""Storefront cart client: guest cart, authenticated cart adapters, and the
reconciliation engine that presents them as one cart.
"""

from shared.logging import configure_logging
from storefront.auth import AuthSignal
from storefront.config import StorefrontSettings
from storefront.guest.storage import JsonFileStorage, MemoryStorage
from storefront.guest.store import GuestCartStore
from storefront.reconciliation.engine import CartReconciliationEngine
from storefront.remote import create_cart_service


def build_engine(auth: AuthSignal, settings: StorefrontSettings | None = None, catalogue=None) -> CartReconciliationEngine:
    """Wire a reconciliation engine from settings (read from the environment by default)."""
    settings = settings or StorefrontSettings.from_env()
    if settings.configure_logs:
        configure_logging("shopstream-storefront")

    storage = JsonFileStorage(settings.guest_cart_path) if settings.guest_cart_path else MemoryStorage()
    guest = GuestCartStore(catalogue=catalogue, storage=storage, pricing=settings.pricing)
    remote = create_cart_service(settings, principal=auth.principal)
    return CartReconciliationEngine(
        guest=guest,
        remote=remote,
        auth=auth,
        settle_delay=settings.merge_settle_delay,
    )
