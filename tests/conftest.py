"""Pytest configuration and shared fixtures."""

import asyncio
import itertools
from datetime import UTC, datetime, timedelta

import pytest

from core import Identity, Note, NotesApp, RemoteError

ALICE = Identity(id="user-alice", email="alice@example.com")
BOB = Identity(id="user-bob", email="bob@example.com")


class FakeIdentityProvider:
    """In-memory identity collaborator.

    ``accounts`` maps email to (password, identity). Sign-up records a pending
    account that must be confirmed before it can sign in.
    """

    def __init__(self, accounts=None, current=None):
        self.accounts = dict(accounts or {})
        self.pending: dict[str, tuple[str, Identity]] = {}
        self.current = current
        self.listeners = []
        self.session_error: Exception | None = None
        self.sign_out_error: Exception | None = None

    def on_change(self, listener):
        self.listeners.append(listener)

        def remove():
            if listener in self.listeners:
                self.listeners.remove(listener)

        return remove

    def emit(self, identity):
        self.current = identity
        for listener in list(self.listeners):
            listener(identity)

    async def get_current_session(self):
        if self.session_error is not None:
            raise self.session_error
        return self.current

    async def sign_up(self, email, password):
        if email in self.accounts or email in self.pending:
            raise RemoteError("User already registered", status_code=400)
        identity = Identity(id=f"user-{email.split('@')[0]}", email=email)
        self.pending[email] = (password, identity)

    def confirm(self, email):
        self.accounts[email] = self.pending.pop(email)

    async def sign_in(self, email, password):
        if email in self.pending:
            raise RemoteError("Email not confirmed", status_code=403)
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise RemoteError("Invalid login credentials", status_code=401)
        self.emit(account[1])

    async def sign_out(self):
        try:
            if self.sign_out_error is not None:
                raise self.sign_out_error
        finally:
            self.emit(None)


class FakeSubscription:
    def __init__(self, owner, callback):
        self.owner = owner
        self.callback = callback
        self.closed = False

    @property
    def active(self):
        return not self.closed


class FakeNotesBackend:
    """In-memory remote note table shared by any number of stores.

    Change notifications are delivered on the next loop iteration, like a
    push channel would. ``fail`` maps an operation name to the error it
    raises next.
    """

    def __init__(self):
        self.rows: list[Note] = []
        self.subscriptions: list[FakeSubscription] = []
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.last_affected: int | None = None
        self.select_gate: asyncio.Event | None = None
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def _check(self, operation):
        error = self.fail.pop(operation, None)
        if error is not None:
            raise error

    def add_row(self, title, owner, content="", created_at=None):
        """Insert directly, bypassing notifications."""
        self._clock += timedelta(seconds=1)
        note = Note(
            id=f"note-{next(self._ids)}",
            title=title,
            content=content,
            created_at=created_at or self._clock,
            owner=owner,
        )
        self.rows.append(note)
        return note

    def owned(self, owner):
        return sorted(
            (row for row in self.rows if row.owner == owner),
            key=lambda row: row.created_at,
            reverse=True,
        )

    def select_count(self, owner=None):
        return sum(1 for call in self.calls if call[0] == "select" and owner in (None, call[1]))

    async def select(self, owner):
        self.calls.append(("select", owner))
        if self.select_gate is not None:
            await self.select_gate.wait()
        self._check("select")
        return self.owned(owner)

    async def insert(self, title, content, owner):
        self.calls.append(("insert", title, content, owner))
        self._check("insert")
        self.add_row(title, owner, content)
        self.notify(owner)

    async def update(self, note_id, owner, title, content):
        self.calls.append(("update", note_id, owner, title, content))
        self._check("update")
        affected = 0
        for index, row in enumerate(self.rows):
            if row.id == note_id and row.owner == owner:
                self.rows[index] = row.model_copy(update={"title": title, "content": content})
                affected += 1
        self.last_affected = affected
        if affected:
            self.notify(owner)
        return affected

    async def delete(self, note_id, owner):
        self.calls.append(("delete", note_id, owner))
        self._check("delete")
        before = len(self.rows)
        self.rows = [row for row in self.rows if not (row.id == note_id and row.owner == owner)]
        affected = before - len(self.rows)
        self.last_affected = affected
        if affected:
            self.notify(owner)
        return affected

    def subscribe(self, owner, on_any_change):
        subscription = FakeSubscription(owner, on_any_change)
        self.subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription):
        self.calls.append(("unsubscribe", subscription.owner))
        subscription.closed = True

    def active_subscriptions(self, owner=None):
        return [s for s in self.subscriptions if s.active and owner in (None, s.owner)]

    def notify(self, owner):
        loop = asyncio.get_running_loop()
        for subscription in self.active_subscriptions(owner):
            loop.call_soon(self._deliver, subscription)

    @staticmethod
    def _deliver(subscription):
        if subscription.active:
            subscription.callback()


def _provider(current=None):
    return FakeIdentityProvider(
        accounts={
            ALICE.email: ("alice-password", ALICE),
            BOB.email: ("bob-password", BOB),
        },
        current=current,
    )


async def _settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let scheduled notifications and refreshes run to completion."""
    return _settle


@pytest.fixture
def identity_provider():
    """Identity provider with two confirmed accounts and nobody signed in."""
    return _provider()


@pytest.fixture
def signed_in_provider():
    """Factory for a provider whose session is already restored for an identity."""
    return lambda identity: _provider(current=identity)


@pytest.fixture
def notes_backend():
    return FakeNotesBackend()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def make_app(notes_backend, notices):
    """Build a NotesApp over the shared backend, closing it after the test."""
    apps = []

    def factory(provider, timeout=1.0):
        app = NotesApp(provider, notes_backend, timeout=timeout, on_notice=notices.append)
        apps.append(app)
        return app

    yield factory

    for app in apps:
        app.close()


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB
