"""Authenticated cart service adapter selection.

- FakeCartService for development and testing (default)
- HttpCartService against the Carts API (CART_SERVICE_ADAPTER=http)
"""

from collections.abc import Callable

from storefront.config import StorefrontSettings
from storefront.remote.port import AuthenticatedCartService


def create_cart_service(
    settings: StorefrontSettings,
    principal: Callable[[], str | None],
) -> AuthenticatedCartService:
    """Build the cart service adapter named by the settings."""
    adapter = settings.cart_service_adapter
    if adapter == "fake":
        from storefront.remote.fake_adapter import FakeCartService

        return FakeCartService(pricing=settings.pricing)
    if adapter == "http":
        from storefront.remote.http_adapter import HttpCartService

        return HttpCartService(
            base_url=settings.cart_api_url,
            principal=principal,
            timeout=settings.cart_api_timeout,
        )
    raise ValueError(f"Unknown cart service adapter: {adapter}")
