"""Carts bounded context: server-side shopping carts for signed-in customers.

Each customer owns a single active cart, identified by the customer id.
Guest carts live on the client; their contents arrive here through the
idempotent merge command when a guest signs in.
"""

import structlog
from protean.domain import Domain

carts = Domain(name="carts")

logger = structlog.get_logger(__name__)
