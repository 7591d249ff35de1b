"""Contracts for the external identity and note collaborators.

The core never talks to a backend directly. It is handed objects that satisfy
these protocols: ``connectors.backend`` provides HTTP implementations, tests
provide in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

from .models import Identity, Note

IdentityListener = Callable[[Identity | None], None]
ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


class Subscription(Protocol):
    """Handle for an open change-notification subscription."""

    owner: str

    @property
    def active(self) -> bool: ...


class IdentityProvider(Protocol):
    """Authentication collaborator."""

    async def get_current_session(self) -> Identity | None: ...

    def on_change(self, listener: IdentityListener) -> Unsubscribe:
        """Register ``listener`` for every auth transition.

        Returns a callable that removes the listener.
        """
        ...

    async def sign_up(self, email: str, password: str) -> None: ...

    async def sign_in(self, email: str, password: str) -> None: ...

    async def sign_out(self) -> None: ...


class NotesBackend(Protocol):
    """Remote note collection. Every call is scoped to ``owner``."""

    async def select(self, owner: str) -> Sequence[Note]:
        """Return the owner's notes ordered by creation time, newest first."""
        ...

    async def insert(self, title: str, content: str, owner: str) -> None: ...

    async def update(self, note_id: str, owner: str, title: str, content: str) -> int:
        """Update a note matching both id and owner. Returns rows affected."""
        ...

    async def delete(self, note_id: str, owner: str) -> int:
        """Delete a note matching both id and owner. Returns rows affected."""
        ...

    def subscribe(self, owner: str, on_any_change: ChangeCallback) -> Subscription:
        """Open a change feed for the owner's notes.

        ``on_any_change`` fires on every insert, update or delete affecting
        the owner's rows, without detail on which row changed.
        """
        ...

    def unsubscribe(self, subscription: Subscription) -> None: ...
