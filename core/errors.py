"""Error hierarchy surfaced to the rendering layer.

Every error carries a human-readable ``message`` that can be shown to the
user as-is. Collaborators raise ``RemoteError``; the session controller and
the note store translate it into the domain error of the operation that
issued the call.
"""


class LivenotesError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RemoteError(LivenotesError):
    """A collaborator call failed (transport error or rejected request)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OperationTimeout(LivenotesError):
    """A remote call did not complete within the configured bound."""


class IdentityError(LivenotesError):
    """Sign-up, sign-in or sign-out was rejected or could not be delivered."""


class NoteSyncError(LivenotesError):
    """A note operation failed."""


class NoteValidationError(NoteSyncError):
    """The note was rejected locally before any remote call."""


class NoteNotFound(NoteSyncError):
    """The id and owner filter matched no remote note."""


class NotSignedIn(NoteSyncError):
    """A note operation was attempted without an active identity."""
