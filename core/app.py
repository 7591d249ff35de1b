"""Wiring between the session controller and the note store."""

from __future__ import annotations

import structlog

from .collaborators import IdentityProvider, NotesBackend
from .models import Identity, SessionState
from .remote import DEFAULT_TIMEOUT
from .session import SessionController
from .store import Notice, NoteSyncStore

# Initialize logger
logger = structlog.get_logger(__name__)


class NotesApp:
    """Holds one session controller and one note store.

    The store follows the session: it is activated for every signed-in
    identity and deactivated as soon as the session ends, so the note cache
    and its change subscription never outlive their owner. Rendering code
    receives this object and reads ``session`` and ``store`` from it.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        notes_backend: NotesBackend,
        timeout: float | None = DEFAULT_TIMEOUT,
        on_notice: Notice | None = None,
    ):
        self.session = SessionController(identity_provider, timeout=timeout)
        self.store = NoteSyncStore(notes_backend, timeout=timeout, on_notice=on_notice)
        self._remove_listener = self.session.add_listener(self._on_session_change)

    async def start(self) -> None:
        """Resolve the initial session. Callers show a loading state until this returns."""
        await self.session.initialize()

    async def sign_out(self) -> None:
        """Sign out and drop the local cache even if the provider call failed."""
        try:
            await self.session.sign_out()
        finally:
            self.store.deactivate()

    def close(self) -> None:
        self._remove_listener()
        self.session.close()
        self.store.deactivate()
        logger.info("notes_app_closed")

    def _on_session_change(self, state: SessionState, identity: Identity | None) -> None:
        if state is SessionState.SIGNED_IN and identity is not None:
            self.store.activate(identity)
        else:
            self.store.deactivate()
