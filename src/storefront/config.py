"""Storefront cart settings, read from the environment."""

import os
from dataclasses import dataclass, field

from shared.pricing import PricingPolicy


@dataclass(frozen=True)
class StorefrontSettings:
    cart_api_url: str = "http://localhost:8000"
    cart_api_timeout: float = 5.0
    # Pause between merge-in and the confirming re-fetch. Tunable only:
    # the re-fetch result, not this delay, decides which guest lines are cleared.
    merge_settle_delay: float = 0.5
    cart_service_adapter: str = "fake"
    guest_cart_path: str | None = None
    pricing: PricingPolicy = field(default_factory=PricingPolicy)
    # Hosts that already configure logging leave this off
    configure_logs: bool = False

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        settle_delay = float(os.environ.get("CART_MERGE_SETTLE_DELAY", "0.5"))
        if settle_delay < 0:
            raise ValueError("CART_MERGE_SETTLE_DELAY must not be negative")
        return cls(
            cart_api_url=os.environ.get("CART_API_URL", "http://localhost:8000"),
            cart_api_timeout=float(os.environ.get("CART_API_TIMEOUT", "5.0")),
            merge_settle_delay=settle_delay,
            cart_service_adapter=os.environ.get("CART_SERVICE_ADAPTER", "fake"),
            guest_cart_path=os.environ.get("GUEST_CART_PATH") or None,
            pricing=PricingPolicy.from_env(),
            configure_logs=os.environ.get("STOREFRONT_CONFIGURE_LOGS", "").lower() in ("1", "true", "yes"),
        )
