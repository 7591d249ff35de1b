"""Pydantic models for API requests and responses."""

from .auth import (
    AuthResponse,
    ConfirmRequest,
    SignInRequest,
    SignUpRequest,
    SignUpResponse,
    UserResponse,
)
from .notes import (
    ChangeEvent,
    MutationResult,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)

__all__ = [
    # Auth models
    "AuthResponse",
    "ConfirmRequest",
    "SignInRequest",
    "SignUpRequest",
    "SignUpResponse",
    "UserResponse",
    # Notes models
    "ChangeEvent",
    "MutationResult",
    "NoteCreate",
    "NoteListResponse",
    "NoteResponse",
    "NoteUpdate",
]
