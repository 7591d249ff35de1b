"""Note synchronization store.

Keeps a local, newest-first snapshot of one identity's notes consistent with
the remote collection. Two things trigger a reload: local mutations and
remote change notifications. Every reload is a full replace of the cache,
never an incremental patch.

Reloads are single-flight. While one ``select`` is in flight, further
requests only mark the store dirty, and exactly one more fetch runs once the
current one finishes. A refresh requested after a mutation therefore always
observes that mutation, and an older snapshot can never land on top of a
newer one. Fetches that complete after the identity changed are discarded.

A write issued by this store is echoed back by the change subscription. The
mutation already reloads once after the write, so one notification per
successful write is absorbed instead of starting a second reload.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .collaborators import NotesBackend, Subscription
from .errors import (
    NoteNotFound,
    NoteSyncError,
    NoteValidationError,
    NotSignedIn,
    OperationTimeout,
    RemoteError,
)
from .models import EditDraft, Identity, Note
from .remote import DEFAULT_TIMEOUT, bounded

# Initialize logger
logger = structlog.get_logger(__name__)

T = TypeVar("T")

Notice = Callable[[str], None]
Confirm = Callable[[Note | None], Awaitable[bool]]


class NoteSyncStore:
    """Owns the local note collection and the edit draft for one identity.

    The store is inert until ``activate`` is called with a signed-in
    identity, and must be ``deactivate``d when that session ends. Both are
    normally driven by ``core.app.NotesApp``.

    Args:
        backend: Remote note collaborator
        timeout: Bound in seconds for every remote call (None waits forever)
        on_notice: Receives messages about refreshes nobody awaited, such as
            those triggered by change notifications
        echo_window: Seconds after a write's reload during which its change
            notification is still expected and absorbed
    """

    def __init__(
        self,
        backend: NotesBackend,
        timeout: float | None = DEFAULT_TIMEOUT,
        on_notice: Notice | None = None,
        echo_window: float = 2.0,
    ):
        self.backend = backend
        self.timeout = timeout
        self.on_notice = on_notice
        self.echo_window = echo_window
        self.identity: Identity | None = None
        self.notes: list[Note] = []
        self.draft = EditDraft()
        self._subscription: Subscription | None = None
        self._generation = 0
        self._refresh_pending = False
        self._refresh_task: asyncio.Task | None = None
        self._reported_task: asyncio.Task | None = None
        self._expected_echoes: list[object] = []

    @property
    def active(self) -> bool:
        return self.identity is not None

    def get(self, note_id: str) -> Note | None:
        return next((note for note in self.notes if note.id == note_id), None)

    # Lifecycle

    def activate(self, identity: Identity) -> None:
        """Subscribe to ``identity``'s notes and schedule the first refresh.

        Activating again for the same identity is a no-op. Activating for a
        different identity tears the previous subscription down first.
        """
        if self.identity is not None:
            if self.identity.id == identity.id:
                return
            self.deactivate()

        self.identity = identity
        self._generation += 1
        self._subscription = self.backend.subscribe(identity.id, self._on_remote_change)
        logger.info("note_store_activated", user_id=identity.id)
        self._request_refresh()

    def deactivate(self) -> None:
        """Unsubscribe and discard the cache and the draft."""
        if self._subscription is not None:
            self.backend.unsubscribe(self._subscription)
            self._subscription = None
            logger.info("note_store_unsubscribed")

        user_id = self.identity.id if self.identity else None
        self._generation += 1
        self.identity = None
        self.notes = []
        self.draft = EditDraft()
        self._refresh_pending = False
        self._refresh_task = None
        self._expected_echoes.clear()
        if user_id:
            logger.info("note_store_deactivated", user_id=user_id)

    # Reconciliation

    async def refresh(self) -> None:
        """Replace the local collection with the owner's remote notes.

        Raises:
            NoteSyncError: The fetch failed. The previous collection is kept.
        """
        self._require_identity()
        task = self._request_refresh()
        error = await asyncio.shield(task)
        if error is not None:
            raise error

    def _request_refresh(self) -> asyncio.Task:
        self._refresh_pending = True
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop(self._generation))
        return self._refresh_task

    async def _refresh_loop(self, generation: int) -> NoteSyncError | None:
        error = None
        while self._refresh_pending and generation == self._generation:
            self._refresh_pending = False
            error = await self._fetch(generation)
        return error

    async def _fetch(self, generation: int) -> NoteSyncError | None:
        owner = self.identity.id
        logger.debug("notes_refresh_started", user_id=owner)

        try:
            notes = await bounded(self.backend.select(owner), "Loading notes", self.timeout)
        except (RemoteError, OperationTimeout) as e:
            if generation != self._generation:
                return None
            logger.error("notes_refresh_failed", user_id=owner, error=e.message)
            return NoteSyncError(f"Could not load notes: {e.message}")

        if generation != self._generation:
            logger.debug("notes_refresh_discarded", user_id=owner)
            return None

        owned = [note for note in notes if note.owner == owner]
        if len(owned) != len(notes):
            logger.warning(
                "notes_refresh_foreign_rows_dropped",
                user_id=owner,
                dropped=len(notes) - len(owned),
            )

        # Stable sort keeps the remote order for equal timestamps
        self.notes = sorted(owned, key=lambda note: note.created_at, reverse=True)
        logger.info("notes_refreshed", user_id=owner, count=len(self.notes))
        return None

    def _on_remote_change(self) -> None:
        if self.identity is None:
            logger.warning("note_change_ignored_inactive_store")
            return
        if self._expected_echoes:
            # Our own write, already covered by the mutation's reload
            self._expected_echoes.pop(0)
            logger.debug("note_change_echo_absorbed", user_id=self.identity.id)
            return
        logger.debug("note_change_received", user_id=self.identity.id)
        task = self._request_refresh()
        if task is not self._reported_task:
            self._reported_task = task
            task.add_done_callback(self._report_background_refresh)

    def _report_background_refresh(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        crash = task.exception()
        if crash is not None:
            logger.error(
                "notes_refresh_crashed", error=str(crash), error_type=type(crash).__name__
            )
            if self.on_notice is not None:
                self.on_notice(f"Could not load notes: {crash}")
            return
        if self.on_notice is None:
            return
        error = task.result()
        if error is not None:
            self.on_notice(error.message)
        elif self.active:
            self.on_notice(f"Notes updated ({len(self.notes)})")

    # Mutations

    async def create(self, title: str, content: str = "") -> None:
        """Insert a note for the active identity and reload.

        Raises:
            NoteValidationError: The title is empty or whitespace
            NotSignedIn: No identity is active
            NoteSyncError: The remote insert failed
        """
        self._validate(title)
        identity = self._require_identity()
        generation = self._generation

        echo = self._expect_echo()
        await self._mutate("Creating note", self.backend.insert(title, content, identity.id), echo)
        logger.info("note_created", user_id=identity.id, title=title)
        await self._refresh_after_mutation(generation, echo)

    async def update(self, note_id: str, title: str, content: str = "") -> None:
        """Update a note filtered by both id and the active owner, then reload.

        Raises:
            NoteNotFound: No note with this id belongs to the active identity
        """
        self._validate(title)
        identity = self._require_identity()
        generation = self._generation

        echo = self._expect_echo()
        affected = await self._mutate(
            "Updating note", self.backend.update(note_id, identity.id, title, content), echo
        )
        await self._refresh_after_mutation(generation, echo, changed=bool(affected))
        if not affected:
            logger.warning("note_update_no_rows", user_id=identity.id, note_id=note_id)
            raise NoteNotFound("Note not found")
        logger.info("note_updated", user_id=identity.id, note_id=note_id)

    async def delete(self, note_id: str, confirm: Confirm) -> bool:
        """Delete a note after ``confirm`` approves it.

        Returns:
            False if the user declined, True once the note is deleted

        Raises:
            NoteSyncError: The session changed while waiting for confirmation
        """
        identity = self._require_identity()
        generation = self._generation
        if not await confirm(self.get(note_id)):
            logger.debug("note_delete_declined", note_id=note_id)
            return False
        if generation != self._generation:
            logger.warning("note_delete_session_changed", user_id=identity.id, note_id=note_id)
            raise NoteSyncError("The session changed before the delete was confirmed")

        echo = self._expect_echo()
        affected = await self._mutate(
            "Deleting note", self.backend.delete(note_id, identity.id), echo
        )
        await self._refresh_after_mutation(generation, echo, changed=bool(affected))
        if not affected:
            logger.warning("note_delete_no_rows", user_id=identity.id, note_id=note_id)
            raise NoteNotFound("Note not found")

        if generation == self._generation and self.draft.editing_target == note_id:
            self.draft = EditDraft()
        logger.info("note_deleted", user_id=identity.id, note_id=note_id)
        return True

    def _expect_echo(self) -> object:
        echo = object()
        self._expected_echoes.append(echo)
        return echo

    def _discard_echo(self, echo: object) -> None:
        if echo in self._expected_echoes:
            self._expected_echoes.remove(echo)

    async def _mutate(self, operation: str, call: Awaitable[T], echo: object) -> T:
        try:
            return await bounded(call, operation, self.timeout)
        except (RemoteError, OperationTimeout) as e:
            self._discard_echo(echo)
            logger.warning("note_mutation_failed", operation=operation, error=e.message)
            raise NoteSyncError(f"{operation} failed: {e.message}") from e

    async def _refresh_after_mutation(
        self, generation: int, echo: object, changed: bool = True
    ) -> None:
        # The mutation already succeeded remotely, so a failed reload is only reported
        if not changed:
            self._discard_echo(echo)
        if generation != self._generation:
            return
        error = await asyncio.shield(self._request_refresh())
        if error is not None and self.on_notice is not None:
            self.on_notice(error.message)
        if echo in self._expected_echoes:
            asyncio.get_running_loop().call_later(self.echo_window, self._discard_echo, echo)

    # Draft

    def begin_edit(self, note: Note) -> None:
        self.draft = EditDraft(title=note.title, content=note.content, editing_target=note.id)

    def edit_draft(self, title: str | None = None, content: str | None = None) -> None:
        """Change the draft's fields, keeping its target."""
        changes = {}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        self.draft = self.draft.model_copy(update=changes)

    def cancel_edit(self) -> None:
        self.draft = EditDraft()

    clear_draft = cancel_edit

    async def submit_draft(self) -> Note | None:
        """Create or update from the draft, clearing it only on success.

        Returns:
            The edited note as it was before the update, or None for a create
        """
        draft = self.draft
        if draft.editing_target is not None:
            previous = self.get(draft.editing_target)
            await self.update(draft.editing_target, draft.title, draft.content)
        else:
            previous = None
            await self.create(draft.title, draft.content)

        if self.draft == draft:
            self.draft = EditDraft()
        return previous

    # Helpers

    def _require_identity(self) -> Identity:
        if self.identity is None:
            raise NotSignedIn("You must be signed in to manage notes")
        return self.identity

    @staticmethod
    def _validate(title: str) -> None:
        if not title or not title.strip():
            raise NoteValidationError("Title is required")
