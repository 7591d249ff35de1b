"""Notes endpoints.

Every read and write is filtered on the token's user AND on the ``owner``
the client names, so a client scoped to the wrong identity matches nothing.
"""

import asyncio
import json
import os
from datetime import UTC, datetime

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..auth import get_current_user
from ..database import get_db
from ..models import (
    ChangeEvent,
    MutationResult,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)
from ..observability import get_app_metrics, get_tracer
from ..services import change_broker

# Initialize logger
logger = structlog.get_logger(__name__)

# Get tracer and metrics
tracer = get_tracer(__name__)
metrics = get_app_metrics()

KEEPALIVE_SECONDS = float(os.getenv("CHANGES_KEEPALIVE_SECONDS", "15"))

router = APIRouter(prefix="/notes", tags=["notes"])


def _note_response(doc: dict) -> NoteResponse:
    return NoteResponse(
        id=str(doc["_id"]),
        title=doc["title"],
        content=doc.get("content", ""),
        created_at=doc["created_at"],
        owner=str(doc["author_id"]),
    )


def _owner_filter(user_id: str, owner: str) -> dict | None:
    """Filter on the authenticated user, or None if ``owner`` names someone else."""
    if owner != user_id:
        logger.warning("notes_owner_mismatch", user_id=user_id, owner=owner)
        return None
    return {"author_id": ObjectId(user_id)}


def _parse_note_id(note_id: str, user_id: str) -> ObjectId:
    try:
        return ObjectId(note_id)
    except InvalidId:
        logger.warning("note_invalid_id", user_id=user_id, note_id=note_id)
        raise HTTPException(status_code=400, detail="Invalid note ID format")


@router.get("", response_model=NoteListResponse)
async def list_notes(owner: str, current_user: dict = Depends(get_current_user)):
    """List the owner's notes, newest first."""
    with tracer.start_as_current_span("list_notes") as span:
        user_id = str(current_user["_id"])
        span.set_attribute("user.id", user_id)

        query = _owner_filter(user_id, owner)
        if query is None:
            return NoteListResponse(notes=[], total=0)

        db = get_db()
        cursor = db.notes.find(query).sort("created_at", -1)
        notes = [_note_response(doc) async for doc in cursor]

        span.set_attribute("notes.count", len(notes))
        logger.info("notes_listed", user_id=user_id, count=len(notes))

        return NoteListResponse(notes=notes, total=len(notes))


@router.post("", response_model=NoteResponse, status_code=201)
async def create_note(note: NoteCreate, current_user: dict = Depends(get_current_user)):
    """Create a note owned by the authenticated user."""
    with tracer.start_as_current_span("create_note") as span:
        user_id = str(current_user["_id"])

        span.set_attribute("user.id", user_id)
        span.set_attribute("note.title", note.title)

        if _owner_filter(user_id, note.owner) is None:
            raise HTTPException(status_code=403, detail="Cannot create notes for another user")

        db = get_db()
        note_doc = {
            "author_id": ObjectId(user_id),
            "title": note.title,
            "content": note.content,
            "created_at": datetime.now(UTC),
        }
        result = await db.notes.insert_one(note_doc)
        note_doc["_id"] = result.inserted_id
        note_id = str(result.inserted_id)

        span.set_attribute("note.id", note_id)
        logger.info("note_created_successfully", note_id=note_id, user_id=user_id)
        metrics.note_mutations.add(1, {"operation": "insert"})

        change_broker.publish(user_id, ChangeEvent(type="insert", note_id=note_id))

        return _note_response(note_doc)


@router.patch("/{note_id}", response_model=MutationResult)
async def update_note(
    note_id: str,
    owner: str,
    note_update: NoteUpdate,
    current_user: dict = Depends(get_current_user),
):
    """Update title and content of the note matching both id and owner."""
    with tracer.start_as_current_span("update_note") as span:
        user_id = str(current_user["_id"])

        span.set_attribute("user.id", user_id)
        span.set_attribute("note.id", note_id)

        note_obj_id = _parse_note_id(note_id, user_id)
        query = _owner_filter(user_id, owner)
        if query is None:
            return MutationResult(affected=0)

        db = get_db()
        result = await db.notes.update_one(
            {"_id": note_obj_id, **query},
            {"$set": {"title": note_update.title, "content": note_update.content}},
        )

        span.set_attribute("note.affected", result.matched_count)
        if result.matched_count:
            logger.info("note_updated_successfully", user_id=user_id, note_id=note_id)
            metrics.note_mutations.add(1, {"operation": "update"})
            change_broker.publish(user_id, ChangeEvent(type="update", note_id=note_id))
        else:
            logger.warning("update_note_not_found", user_id=user_id, note_id=note_id)

        return MutationResult(affected=result.matched_count)


@router.delete("/{note_id}", response_model=MutationResult)
async def delete_note(note_id: str, owner: str, current_user: dict = Depends(get_current_user)):
    """Permanently delete the note matching both id and owner."""
    with tracer.start_as_current_span("delete_note") as span:
        user_id = str(current_user["_id"])

        span.set_attribute("user.id", user_id)
        span.set_attribute("note.id", note_id)

        note_obj_id = _parse_note_id(note_id, user_id)
        query = _owner_filter(user_id, owner)
        if query is None:
            return MutationResult(affected=0)

        db = get_db()
        result = await db.notes.delete_one({"_id": note_obj_id, **query})

        span.set_attribute("note.affected", result.deleted_count)
        if result.deleted_count:
            logger.info("note_deleted_successfully", user_id=user_id, note_id=note_id)
            metrics.note_mutations.add(1, {"operation": "delete"})
            change_broker.publish(user_id, ChangeEvent(type="delete", note_id=note_id))
        else:
            logger.warning("delete_note_not_found", user_id=user_id, note_id=note_id)

        return MutationResult(affected=result.deleted_count)


@router.get("/changes")
async def stream_changes(request: Request, current_user: dict = Depends(get_current_user)):
    """
    Stream change events for the caller's notes as Server-Sent Events (SSE).

    The first event has type "ready". Keepalive comments are sent while idle.
    """
    user_id = str(current_user["_id"])
    queue = change_broker.subscribe(user_id)
    metrics.change_streams.add(1)
    logger.info("change_stream_opened", user_id=user_id)

    async def generate_events():
        """Generate SSE stream of change events."""
        try:
            ready_data = json.dumps({"type": "ready"})
            yield f"data: {ready_data}\n\n"

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {event.model_dump_json()}\n\n"
        finally:
            change_broker.unsubscribe(user_id, queue)
            metrics.change_streams.add(-1)
            logger.info("change_stream_closed", user_id=user_id)

    return StreamingResponse(generate_events(), media_type="text/event-stream")
