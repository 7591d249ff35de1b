"""Notes-related Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class NoteWrite(BaseModel):
    """Fields shared by note creation and update."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = ""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, title: str) -> str:
        if not title.strip():
            raise ValueError("Title is required")
        return title


class NoteCreate(NoteWrite):
    """Request model for creating a note."""

    owner: str


class NoteUpdate(NoteWrite):
    """Request model for updating a note's title and content."""


class NoteResponse(BaseModel):
    """Response model for note data."""

    id: str
    title: str
    content: str
    created_at: datetime
    owner: str


class NoteListResponse(BaseModel):
    """Response model for listing notes."""

    notes: list[NoteResponse]
    total: int


class MutationResult(BaseModel):
    """Rows matched by a filtered update or delete."""

    affected: int


class ChangeEvent(BaseModel):
    """A change to one of the owner's notes, pushed on the change stream."""

    type: Literal["insert", "update", "delete"]
    note_id: str
