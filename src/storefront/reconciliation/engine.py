"""Cart reconciliation engine.

Presents one cart to storefront code while a visitor moves between guest and
signed-in sessions. The engine:

- watches the auth signal and opens a fresh merge session per login
- migrates each guest line into the authenticated cart at most once per
  session, removing the merged lines from the guest cart only after a
  re-fetch shows the authenticated cart is non-empty
- retries a failed merge on the next tick, with no bound on attempts
- routes every mutation to the store that matches the auth status

The host drives the engine by calling tick() whenever it re-renders or
receives an auth change. Nothing here runs on a timer.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Iterator
from enum import Enum

import structlog

from shared.logging import bound_context
from storefront.auth import AuthSignal, AuthStatus
from storefront.cart.errors import CartError, ErrorKind, RemoteUnavailable
from storefront.cart.snapshot import CartSnapshot
from storefront.guest.store import GuestCartStore, check_quantity
from storefront.reconciliation.state import MergeSession, ReconciliationState
from storefront.reconciliation.view import derive_view
from storefront.remote.port import AuthenticatedCartService

logger = structlog.get_logger(__name__)


class TickOutcome(Enum):
    AWAITING_AUTH = "AwaitingAuth"
    ANONYMOUS = "Anonymous"
    MERGE_NOT_NEEDED = "MergeNotNeeded"
    MERGE_COMMITTED = "MergeCommitted"
    MERGE_FAILED = "MergeFailed"
    MERGE_INCOMPLETE = "MergeIncomplete"
    REENTRANT_MERGE_IGNORED = "ReentrantMergeIgnored"
    SUPERSEDED = "Superseded"
    SETTLED = "Settled"


class CartReconciliationEngine:
    def __init__(
        self,
        guest: GuestCartStore,
        remote: AuthenticatedCartService,
        auth: AuthSignal,
        settle_delay: float = 0.5,
    ) -> None:
        if settle_delay < 0:
            raise ValueError("settle_delay must not be negative")
        self._guest = guest
        self._remote = remote
        self._auth = auth
        self._settle_delay = settle_delay
        self._session = MergeSession()
        self._pending_ops = 0
        self._last_error: ErrorKind | None = None

    # -------------------------------------------------------------------
    # Read surface
    # -------------------------------------------------------------------
    def reconciliation_state(self) -> ReconciliationState:
        """Current merge state. For diagnostics only."""
        return self._session.state

    def unified_snapshot(self) -> CartSnapshot:
        return derive_view(
            self._session.state,
            self._auth.status(),
            self._guest.snapshot(),
            self._remote.last_snapshot,
        )

    def is_loading(self) -> bool:
        return (
            self._auth.status() is AuthStatus.UNKNOWN
            or self._pending_ops > 0
            or self._session.state is ReconciliationState.MERGING
        )

    def last_error(self) -> ErrorKind | None:
        return self._last_error

    def clear_error(self) -> None:
        self._last_error = None

    def _authenticated(self) -> bool:
        return self._auth.status() is AuthStatus.AUTHENTICATED

    # -------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------
    def observe(self) -> ReconciliationState:
        """Apply auth edges to the merge session without doing any I/O.

        A sign-out (or a different principal signing in) resets the session
        to Idle. A sign-in from Idle moves to Pending, or to NotNeeded when
        the guest cart is empty.
        """
        status = self._auth.status()
        session = self._session

        if status is AuthStatus.GUEST:
            if session.state is not ReconciliationState.IDLE:
                self._reset("signed_out")
            return self._session.state

        if status is AuthStatus.AUTHENTICATED:
            principal = self._auth.principal()
            if session.principal is not None and session.principal != principal:
                self._reset("principal_changed")
                session = self._session

            if session.state is ReconciliationState.IDLE:
                session.principal = principal
                if self._guest.snapshot().is_empty:
                    session.advance(ReconciliationState.NOT_NEEDED)
                    logger.info("cart_merge_not_needed", session_id=session.session_id, customer_id=principal)
                else:
                    session.advance(ReconciliationState.PENDING)
                    logger.info("cart_merge_pending", session_id=session.session_id, customer_id=principal)

        return session.state

    def _reset(self, reason: str) -> None:
        previous = self._session
        if previous.state is not ReconciliationState.IDLE:
            previous.advance(ReconciliationState.IDLE)
        self._session = MergeSession()
        self._remote.reset()
        logger.info(
            "cart_merge_session_reset",
            reason=reason,
            previous_session_id=previous.session_id,
            session_id=self._session.session_id,
        )

    def _superseded(self, session: MergeSession) -> bool:
        if session is self._session:
            return False
        logger.info("cart_merge_superseded", session_id=session.session_id)
        return True

    async def tick(self) -> TickOutcome:
        """Advance reconciliation by one step."""
        status = self._auth.status()
        if status is AuthStatus.UNKNOWN:
            return TickOutcome.AWAITING_AUTH

        state = self.observe()
        if status is AuthStatus.GUEST:
            return TickOutcome.ANONYMOUS

        session = self._session
        if state is ReconciliationState.MERGING:
            logger.debug("cart_merge_reentry_ignored", session_id=session.session_id)
            return TickOutcome.REENTRANT_MERGE_IGNORED

        if state in (ReconciliationState.PENDING, ReconciliationState.FAILED):
            return await self._merge(session)

        if not self._guest.snapshot().is_empty:
            # Lines added to the guest cart while auth was being re-checked
            logger.info("cart_merge_leftover_lines", session_id=session.session_id, state=state.value)
            return await self._merge(session)

        await self._initial_fetch(session)
        return TickOutcome.SETTLED

    # -------------------------------------------------------------------
    # Merge protocol
    # -------------------------------------------------------------------
    async def _merge(self, session: MergeSession) -> TickOutcome:
        guest = self._guest.snapshot()
        if guest.is_empty:
            session.advance(ReconciliationState.NOT_NEEDED)
            logger.info("cart_merge_not_needed", session_id=session.session_id, customer_id=session.principal)
            return TickOutcome.MERGE_NOT_NEEDED

        # The latch is set before the first suspension point
        if not session.begin_merge():
            logger.debug("cart_merge_reentry_ignored", session_id=session.session_id)
            return TickOutcome.REENTRANT_MERGE_IGNORED

        lines = guest.merge_lines()
        merge_key = self._guest.merge_key()
        try:
            with bound_context(
                cart_session_id=session.session_id,
                customer_id=session.principal,
                merge_attempt=session.attempts,
            ):
                logger.info("cart_merge_started", lines=len(lines), item_count=guest.item_count)
                return await self._attempt_merge(session, lines, merge_key)
        except BaseException:
            # Cancelled, or an adapter raised something outside the taxonomy
            if session is self._session and session.state is ReconciliationState.MERGING:
                session.advance(ReconciliationState.FAILED)
                logger.warning("cart_merge_aborted", session_id=session.session_id)
            raise

    async def _attempt_merge(self, session: MergeSession, lines: list[dict], merge_key: str) -> TickOutcome:
        try:
            result = await self._remote.merge_in(lines, merge_key)
        except CartError as exc:
            if self._superseded(session):
                return TickOutcome.SUPERSEDED
            return self._fail(session, exc.kind, exc.message)
        if self._superseded(session):
            return TickOutcome.SUPERSEDED
        if not result.success:
            return self._fail(session, ErrorKind.REMOTE_UNAVAILABLE, result.failure_reason or "merge rejected")

        if self._settle_delay:
            await asyncio.sleep(self._settle_delay)
            if self._superseded(session):
                return TickOutcome.SUPERSEDED

        try:
            confirmed = await self._remote.snapshot()
        except CartError as exc:
            if self._superseded(session):
                return TickOutcome.SUPERSEDED
            return self._fail(session, exc.kind, exc.message)
        if self._superseded(session):
            return TickOutcome.SUPERSEDED

        if confirmed is None or confirmed.is_empty:
            return self._fail(session, ErrorKind.MERGE_INCOMPLETE, "authenticated cart still empty after merge")

        # Only the lines sent in this attempt are confirmed
        remaining = self._guest.discard_merged(lines)
        session.advance(ReconciliationState.COMMITTED)
        session.initial_fetch_done = True
        session.last_error = None
        self._last_error = None
        logger.info(
            "cart_merge_committed",
            items_merged=result.items_merged,
            item_count=confirmed.item_count,
            guest_lines_kept=len(remaining.items),
        )
        return TickOutcome.MERGE_COMMITTED

    def _fail(self, session: MergeSession, kind: ErrorKind, reason: str) -> TickOutcome:
        """Move to Failed, keeping the guest cart as the usable fallback."""
        session.advance(ReconciliationState.FAILED)
        session.last_error = kind
        self._last_error = kind

        if kind is ErrorKind.MERGE_INCOMPLETE:
            logger.warning("cart_merge_incomplete", reason=reason)
            return TickOutcome.MERGE_INCOMPLETE
        logger.warning("cart_merge_failed", error_kind=kind.value, reason=reason)
        return TickOutcome.MERGE_FAILED

    async def _initial_fetch(self, session: MergeSession) -> None:
        """Load the authenticated cart once per settled session."""
        if session.initial_fetch_done or self._remote.last_snapshot is not None:
            return
        session.initial_fetch_done = True
        try:
            with self._tracking():
                await self._remote.snapshot()
        except RemoteUnavailable as exc:
            if session is self._session:
                session.initial_fetch_done = False
            self._last_error = exc.kind
            logger.warning("cart_initial_fetch_failed", session_id=session.session_id, reason=exc.message)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    @contextlib.contextmanager
    def _tracking(self) -> Iterator[None]:
        self._pending_ops += 1
        try:
            yield
        finally:
            self._pending_ops -= 1

    async def _call_remote(
        self, operation: str, call: Callable[..., Awaitable[CartSnapshot]], *args
    ) -> CartSnapshot:
        try:
            with self._tracking():
                snapshot = await call(*args)
        except CartError as exc:
            if exc.kind is ErrorKind.REMOTE_UNAVAILABLE:
                self._last_error = exc.kind
            logger.warning("cart_operation_failed", operation=operation, error_kind=exc.kind.value, reason=exc.message)
            raise
        self._last_error = None
        return snapshot

    async def add(self, product_id: str, quantity: int = 1) -> CartSnapshot:
        check_quantity(quantity)
        if self._authenticated():
            return await self._call_remote("add", self._remote.add, str(product_id), quantity)
        return self._guest.add(product_id, quantity)

    async def update(self, product_id: str, quantity: int) -> CartSnapshot:
        check_quantity(quantity)
        if self._authenticated():
            return await self._call_remote("update", self._remote.update, str(product_id), quantity)
        return self._guest.update(product_id, quantity)

    async def remove(self, product_id: str) -> CartSnapshot:
        if self._authenticated():
            return await self._call_remote("remove", self._remote.remove, str(product_id))
        return self._guest.remove(product_id)

    async def clear(self) -> None:
        if self._authenticated():
            await self._call_remote("clear", self._remote.clear)
        else:
            self._guest.clear()

    async def refresh(self) -> CartSnapshot:
        """Re-read the authoritative store and return the unified view."""
        if self._authenticated():
            await self._call_remote("refresh", self._remote.snapshot)
        return self.unified_snapshot()
