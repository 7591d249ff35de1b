"""Domain models shared by the session controller and the note store."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """An authenticated user as reported by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str


class Note(BaseModel):
    """A note as stored remotely. Local copies are a read-only cache."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(..., min_length=1)
    content: str = ""
    created_at: datetime
    owner: str


class EditDraft(BaseModel):
    """Form state for composing a new note or editing an existing one."""

    title: str = ""
    content: str = ""
    editing_target: str | None = None

    @property
    def is_editing(self) -> bool:
        return self.editing_target is not None

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.content and self.editing_target is None


class SessionState(str, Enum):
    """Lifecycle of the session controller."""

    UNKNOWN = "unknown"
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"
