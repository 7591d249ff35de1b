"""HTTP connector for the Livenotes backend.

This module implements the identity and notes collaborators consumed by
``core`` on top of an ``httpx.AsyncClient``:
- Password sign-up, sign-in and sign-out with a persisted bearer token
- Owner-scoped note reads and filtered writes
- A Server-Sent Events change subscription that reconnects on its own
- OpenTelemetry spans around every request
"""

from __future__ import annotations

import asyncio
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import httpx
import structlog
from opentelemetry import trace

from core.collaborators import ChangeCallback, IdentityListener, Unsubscribe
from core.errors import RemoteError
from core.models import Identity, Note

tracer = trace.get_tracer(__name__)
logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "http://localhost:8000"


class FileTokenStore:
    """Keeps the bearer token in a local file between runs."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> str | None:
        if self.path.exists():
            return self.path.read_text().strip() or None
        return None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token)

    def delete(self) -> None:
        if self.path.exists():
            self.path.unlink()


class MemoryTokenStore:
    """Token store that forgets everything when the process exits."""

    def __init__(self, token: str | None = None):
        self.token = token

    def load(self) -> str | None:
        return self.token

    def save(self, token: str) -> None:
        self.token = token

    def delete(self) -> None:
        self.token = None


def _error_detail(response: httpx.Response) -> str:
    """Extract a human-readable message from an error response."""
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None

    if isinstance(detail, list):
        # FastAPI validation errors
        return "; ".join(item.get("msg", str(item)) for item in detail)
    if detail:
        return str(detail)
    return f"Request failed with status {response.status_code}"


@contextmanager
def _expect_shape(path: str):
    """Report a body that does not parse into the expected shape as a RemoteError."""
    try:
        yield
    except (ValueError, KeyError, TypeError) as e:
        # pydantic's ValidationError and JSONDecodeError are both ValueErrors
        logger.error("api_response_malformed", path=path, error=str(e))
        raise RemoteError("Unexpected response from API server") from e


class BackendConnector:
    """Async client for the Livenotes API.

    Exposes ``identity`` and ``notes``, which satisfy the
    ``IdentityProvider`` and ``NotesBackend`` protocols.

    Example:
        >>> async with BackendConnector("http://localhost:8000") as backend:
        ...     app = NotesApp(backend.identity, backend.notes)
        ...     await app.start()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token_store: FileTokenStore | MemoryTokenStore | None = None,
        timeout: float = 10.0,
        reconnect_delay: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the connector.

        Args:
            base_url: Root URL of the API
            token_store: Where the bearer token is kept (in memory by default)
            timeout: Per-request timeout in seconds
            reconnect_delay: Seconds to wait before reopening a dropped change stream
            transport: Optional custom transport (used by tests)
        """
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.token_store = token_store or MemoryTokenStore()
        self.reconnect_delay = reconnect_delay
        self.identity = IdentityClient(self)
        self.notes = NotesClient(self)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close open change streams and the underlying HTTP client."""
        await self.notes.close()
        await self.client.aclose()

    def auth_headers(self) -> dict[str, str]:
        token = self.token_store.load()
        if not token:
            raise RemoteError("Not signed in", status_code=401)
        return {"Authorization": f"Bearer {token}"}

    async def request(
        self, method: str, path: str, auth: bool = True, **kwargs: Any
    ) -> httpx.Response:
        """Send a request and turn every failure into ``RemoteError``.

        Raises:
            RemoteError: Transport failure or a 4xx/5xx response
        """
        with tracer.start_as_current_span(f"livenotes.{method.lower()}") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("http.route", path)

            headers = self.auth_headers() if auth else {}
            try:
                response = await self.client.request(method, path, headers=headers, **kwargs)
            except httpx.ConnectError as e:
                logger.warning("api_connect_failed", path=path, error=str(e))
                raise RemoteError("Could not connect to API server") from e
            except httpx.TimeoutException as e:
                logger.warning("api_request_timed_out", path=path)
                raise RemoteError("API request timed out") from e
            except httpx.HTTPError as e:
                logger.warning("api_request_failed", path=path, error=str(e))
                raise RemoteError(f"API request failed: {e}") from e

            span.set_attribute("http.status_code", response.status_code)
            if response.is_error:
                detail = _error_detail(response)
                logger.info(
                    "api_request_rejected", path=path, status=response.status_code, detail=detail
                )
                raise RemoteError(detail, status_code=response.status_code)
            return response


class IdentityClient:
    """Identity collaborator backed by the /auth endpoints."""

    def __init__(self, connector: BackendConnector):
        self.connector = connector
        self._listeners: list[IdentityListener] = []

    def on_change(self, listener: IdentityListener) -> Unsubscribe:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, identity: Identity | None) -> None:
        for listener in list(self._listeners):
            listener(identity)

    async def get_current_session(self) -> Identity | None:
        """Validate the stored token, dropping it if the server rejects it."""
        if self.connector.token_store.load() is None:
            return None

        try:
            response = await self.connector.request("GET", "/auth/session")
        except RemoteError as e:
            if e.status_code in (401, 403):
                logger.info("stored_session_rejected", status=e.status_code)
                self.connector.token_store.delete()
                return None
            raise

        with _expect_shape("/auth/session"):
            user = response.json()
            return Identity(id=user["id"], email=user["email"])

    async def sign_up(self, email: str, password: str) -> None:
        await self.connector.request(
            "POST", "/auth/signup", auth=False, json={"email": email, "password": password}
        )

    async def confirm(self, token: str) -> None:
        """Redeem an emailed confirmation token."""
        await self.connector.request("POST", "/auth/confirm", auth=False, json={"token": token})

    async def sign_in(self, email: str, password: str) -> None:
        response = await self.connector.request(
            "POST", "/auth/signin", auth=False, json={"email": email, "password": password}
        )
        with _expect_shape("/auth/signin"):
            data = response.json()
            token = data["access_token"]
            identity = Identity(id=data["user"]["id"], email=data["user"]["email"])
        self.connector.token_store.save(token)
        self._emit(identity)

    async def sign_out(self) -> None:
        """Tell the server, then forget the token whatever the server said.

        Raises:
            RemoteError: The server was not told. The local token is gone anyway.
        """
        try:
            await self.connector.request("POST", "/auth/signout")
        except RemoteError as e:
            logger.warning("remote_signout_failed", error=e.message)
            raise
        finally:
            self.connector.token_store.delete()
            self._emit(None)


class ChangeSubscription:
    """Handle for one open change stream."""

    def __init__(self, owner: str):
        self.owner = owner
        self.task: asyncio.Task | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.task is not None:
            self.task.cancel()


class NotesClient:
    """Notes collaborator backed by the /notes endpoints."""

    def __init__(self, connector: BackendConnector):
        self.connector = connector
        self._subscriptions: set[ChangeSubscription] = set()

    async def select(self, owner: str) -> list[Note]:
        response = await self.connector.request("GET", "/notes", params={"owner": owner})
        with _expect_shape("/notes"):
            return [Note.model_validate(item) for item in response.json()["notes"]]

    async def insert(self, title: str, content: str, owner: str) -> None:
        await self.connector.request(
            "POST", "/notes", json={"title": title, "content": content, "owner": owner}
        )

    async def update(self, note_id: str, owner: str, title: str, content: str) -> int:
        response = await self.connector.request(
            "PATCH",
            f"/notes/{note_id}",
            params={"owner": owner},
            json={"title": title, "content": content},
        )
        with _expect_shape(f"/notes/{note_id}"):
            return int(response.json()["affected"])

    async def delete(self, note_id: str, owner: str) -> int:
        response = await self.connector.request(
            "DELETE", f"/notes/{note_id}", params={"owner": owner}
        )
        with _expect_shape(f"/notes/{note_id}"):
            return int(response.json()["affected"])

    def subscribe(self, owner: str, on_any_change: ChangeCallback) -> ChangeSubscription:
        subscription = ChangeSubscription(owner)
        subscription.task = asyncio.create_task(self._listen(subscription, on_any_change))
        self._subscriptions.add(subscription)
        logger.info("change_subscription_opened", owner=owner)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        if not subscription.active:
            return
        subscription.close()
        self._subscriptions.discard(subscription)
        logger.info("change_subscription_closed", owner=subscription.owner)

    async def close(self) -> None:
        """Cancel every open stream and wait for them to finish."""
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            self.unsubscribe(subscription)
        tasks = [s.task for s in subscriptions if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _listen(
        self, subscription: ChangeSubscription, on_any_change: ChangeCallback
    ) -> None:
        """Read the change stream until unsubscribed, reconnecting after drops.

        Events may be lost while disconnected, so every reconnect after the
        first is reported as a change.
        """
        connected_before = False
        while subscription.active:
            try:
                async for event in self._read_stream():
                    if event.get("type") == "ready":
                        if connected_before:
                            on_any_change()
                        connected_before = True
                        continue
                    on_any_change()
            except RemoteError as e:
                if e.status_code in (401, 403):
                    logger.error("change_stream_unauthorized", owner=subscription.owner)
                    return
                logger.warning("change_stream_failed", owner=subscription.owner, error=e.message)
            except httpx.HTTPError as e:
                logger.warning("change_stream_dropped", owner=subscription.owner, error=str(e))

            if subscription.active:
                await asyncio.sleep(self.connector.reconnect_delay)

    async def _read_stream(self):
        """Yield decoded SSE ``data:`` payloads from /notes/changes."""
        headers = self.connector.auth_headers()
        timeout = httpx.Timeout(self.connector.client.timeout.connect, read=None)
        async with self.connector.client.stream(
            "GET", "/notes/changes", headers=headers, timeout=timeout
        ) as response:
            if response.is_error:
                await response.aread()
                raise RemoteError(_error_detail(response), status_code=response.status_code)

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    # Keepalive comments and event separators
                    continue
                try:
                    yield json.loads(line[len("data:"):].strip())
                except json.JSONDecodeError:
                    logger.warning("change_event_malformed", line=line)
