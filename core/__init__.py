"""Client-side session and note synchronization core."""

from .app import NotesApp
from .errors import (
    IdentityError,
    LivenotesError,
    NoteNotFound,
    NoteSyncError,
    NoteValidationError,
    NotSignedIn,
    OperationTimeout,
    RemoteError,
)
from .models import EditDraft, Identity, Note, SessionState
from .session import SessionController
from .store import NoteSyncStore

__all__ = [
    # Errors
    "IdentityError",
    "LivenotesError",
    "NoteNotFound",
    "NoteSyncError",
    "NoteValidationError",
    "NotSignedIn",
    "OperationTimeout",
    "RemoteError",
    # Models
    "EditDraft",
    "Identity",
    "Note",
    "SessionState",
    # Components
    "NoteSyncStore",
    "NotesApp",
    "SessionController",
]
