"""Unified cart view derivation.

The view is recomputed on every read from the current merge state and the
two stores' snapshots. It holds no state of its own.
"""

from storefront.auth import AuthStatus
from storefront.cart.snapshot import CartSnapshot
from storefront.reconciliation.state import SETTLED_STATES, ReconciliationState


def derive_view(
    state: ReconciliationState,
    auth_status: AuthStatus,
    guest: CartSnapshot,
    authenticated: CartSnapshot | None,
) -> CartSnapshot:
    """Pick the snapshot the customer should see.

    While a signed-in session has not settled its merge, an empty or absent
    authenticated cart never hides a non-empty guest cart.
    """
    if auth_status is not AuthStatus.AUTHENTICATED:
        return guest

    if authenticated is not None and not authenticated.is_empty:
        return authenticated

    if state in SETTLED_STATES:
        return authenticated if authenticated is not None else CartSnapshot.empty()

    if not guest.is_empty:
        return guest

    return CartSnapshot.empty()
