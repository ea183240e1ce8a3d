"""Merge state machine for one login session.

A session starts Idle when the engine (or a sign-out) creates it. Signing
in moves it to Pending, or straight to NotNeeded when there is nothing to
migrate. Merging is guarded by a latch so only one merge attempt per session
can be in flight. A settled session merges again only when lines reached
the guest cart after it settled (auth was briefly unknown).
"""

import itertools
from enum import Enum

import structlog

from storefront.cart.errors import ErrorKind

logger = structlog.get_logger(__name__)


class ReconciliationState(Enum):
    IDLE = "Idle"
    PENDING = "Pending"
    MERGING = "Merging"
    COMMITTED = "Committed"
    FAILED = "Failed"
    NOT_NEEDED = "NotNeeded"


SETTLED_STATES = frozenset({ReconciliationState.COMMITTED, ReconciliationState.NOT_NEEDED})

_TRANSITIONS = {
    ReconciliationState.IDLE: {ReconciliationState.PENDING, ReconciliationState.NOT_NEEDED},
    ReconciliationState.PENDING: {
        ReconciliationState.MERGING,
        ReconciliationState.NOT_NEEDED,
        ReconciliationState.IDLE,
    },
    ReconciliationState.MERGING: {
        ReconciliationState.COMMITTED,
        ReconciliationState.FAILED,
        ReconciliationState.IDLE,
    },
    ReconciliationState.FAILED: {
        ReconciliationState.MERGING,
        ReconciliationState.NOT_NEEDED,
        ReconciliationState.IDLE,
    },
    ReconciliationState.COMMITTED: {ReconciliationState.MERGING, ReconciliationState.IDLE},
    ReconciliationState.NOT_NEEDED: {ReconciliationState.MERGING, ReconciliationState.IDLE},
}

# Reaching any of these releases the merge latch
_LATCH_RELEASING = frozenset(
    {
        ReconciliationState.COMMITTED,
        ReconciliationState.NOT_NEEDED,
        ReconciliationState.FAILED,
        ReconciliationState.IDLE,
    }
)

_session_ids = itertools.count(1)


class IllegalTransition(Exception):
    def __init__(self, source: ReconciliationState, target: ReconciliationState) -> None:
        super().__init__(f"Cannot move merge session from {source.value} to {target.value}")
        self.source = source
        self.target = target


class MergeSession:
    """Merge bookkeeping scoped to one login session."""

    def __init__(self) -> None:
        self.session_id: int = next(_session_ids)
        self.state = ReconciliationState.IDLE
        self.principal: str | None = None
        self.latched = False
        self.attempts = 0
        self.last_error: ErrorKind | None = None
        self.initial_fetch_done = False

    @property
    def settled(self) -> bool:
        return self.state in SETTLED_STATES

    def can_advance(self, target: ReconciliationState) -> bool:
        return target in _TRANSITIONS[self.state]

    def advance(self, target: ReconciliationState) -> None:
        if not self.can_advance(target):
            raise IllegalTransition(self.state, target)

        logger.debug(
            "cart_merge_transition",
            session_id=self.session_id,
            source=self.state.value,
            target=target.value,
        )
        self.state = target
        if target in _LATCH_RELEASING:
            self.latched = False

    def begin_merge(self) -> bool:
        """Enter Merging and set the latch. False if a merge is already in flight."""
        if self.latched:
            return False
        self.advance(ReconciliationState.MERGING)
        self.latched = True
        self.attempts += 1
        return True
