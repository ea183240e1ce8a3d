"""Authentication signal consumed by the cart engine.

Only two facts matter to carts: whether the visitor is signed in (or the
answer is still loading), and which principal they are.
"""

from abc import ABC, abstractmethod
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class AuthStatus(Enum):
    UNKNOWN = "Unknown"
    GUEST = "Guest"
    AUTHENTICATED = "Authenticated"


class AuthSignal(ABC):
    @abstractmethod
    def status(self) -> AuthStatus: ...

    @abstractmethod
    def principal(self) -> str | None:
        """Id of the signed-in customer, None unless authenticated."""
        ...


class SessionAuthSignal(AuthSignal):
    """Auth signal driven by the host application's session handling.

    Starts in UNKNOWN until the host reports the outcome of its session
    check through login() or logout().
    """

    def __init__(self) -> None:
        self._status = AuthStatus.UNKNOWN
        self._principal: str | None = None

    def status(self) -> AuthStatus:
        return self._status

    def principal(self) -> str | None:
        return self._principal

    def mark_loading(self) -> None:
        self._status = AuthStatus.UNKNOWN
        self._principal = None

    def login(self, customer_id: str) -> None:
        if not customer_id:
            raise ValueError("A signed-in session needs a customer id")
        self._status = AuthStatus.AUTHENTICATED
        self._principal = str(customer_id)
        logger.info("session_authenticated", customer_id=self._principal)

    def logout(self) -> None:
        self._status = AuthStatus.GUEST
        self._principal = None
        logger.info("session_signed_out")
