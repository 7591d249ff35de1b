"""Session controller: the single owner of "who, if anyone, is signed in"."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from .collaborators import IdentityProvider, Unsubscribe
from .errors import IdentityError, LivenotesError, OperationTimeout, RemoteError
from .models import Identity, SessionState
from .remote import DEFAULT_TIMEOUT, bounded

# Initialize logger
logger = structlog.get_logger(__name__)

SessionObserver = Callable[[SessionState, Identity | None], None]


class SessionController:
    """Tracks the current identity reported by an identity provider.

    The provider's change listener is the only writer of ``identity``.
    ``sign_up``, ``sign_in`` and ``sign_out`` are requests: they forward to the
    provider and raise ``IdentityError`` on failure, but never set the
    identity themselves.

    Example:
        >>> session = SessionController(provider)
        >>> await session.initialize()
        >>> session.state
        <SessionState.SIGNED_OUT: 'signed_out'>
    """

    def __init__(self, provider: IdentityProvider, timeout: float | None = DEFAULT_TIMEOUT):
        self.provider = provider
        self.timeout = timeout
        self.state = SessionState.UNKNOWN
        self.identity: Identity | None = None
        self._observers: list[SessionObserver] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def is_loading(self) -> bool:
        return self.state is SessionState.UNKNOWN

    @property
    def signed_in(self) -> bool:
        return self.state is SessionState.SIGNED_IN

    def add_listener(self, observer: SessionObserver) -> Unsubscribe:
        """Be told about every state transition. Returns a remover."""
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    async def initialize(self) -> None:
        """Subscribe to identity changes and restore any existing session.

        A failed lookup is treated as signed out. The state leaves UNKNOWN
        only once this resolves.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.provider.on_change(self._on_identity_change)

        try:
            identity = await bounded(
                self.provider.get_current_session(), "Session restore", self.timeout
            )
        except LivenotesError as e:
            logger.warning("session_restore_failed", error=e.message)
            identity = None

        # A change notification may already have resolved the state
        if self.state is SessionState.UNKNOWN:
            self._set_identity(identity)
        logger.info("session_initialized", state=self.state.value)

    async def sign_up(self, email: str, password: str) -> None:
        """Create an account. The provider sends a confirmation step out of band."""
        await self._forward("Sign up", self.provider.sign_up(email, password), email=email)

    async def sign_in(self, email: str, password: str) -> None:
        await self._forward("Sign in", self.provider.sign_in(email, password), email=email)

    async def sign_out(self) -> None:
        await self._forward("Sign out", self.provider.sign_out())

    def close(self) -> None:
        """Remove the provider listener."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug("session_listener_removed")

    async def _forward(self, operation: str, call, **context) -> None:
        logger.info("identity_request", operation=operation, **context)
        try:
            await bounded(call, operation, self.timeout)
        except OperationTimeout as e:
            raise IdentityError(e.message) from e
        except RemoteError as e:
            logger.warning("identity_request_failed", operation=operation, error=e.message)
            raise IdentityError(e.message) from e

    def _on_identity_change(self, identity: Identity | None) -> None:
        if identity == self.identity and self.state is not SessionState.UNKNOWN:
            # Token refresh for the same user
            logger.debug("session_identity_unchanged")
            return
        self._set_identity(identity)

    def _set_identity(self, identity: Identity | None) -> None:
        self.identity = identity
        self.state = SessionState.SIGNED_IN if identity else SessionState.SIGNED_OUT
        logger.info(
            "session_state_changed",
            state=self.state.value,
            user_id=identity.id if identity else None,
        )
        for observer in list(self._observers):
            observer(self.state, identity)
