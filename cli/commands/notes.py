"""Notes command handlers.

Handlers never touch the note collection or the draft directly; they go
through the store's operations and print an acknowledgment for every
outcome.
"""

from core import NotesApp, NoteSyncError, NotSignedIn

from .prompts import ask, confirm, edit_text


def _format_time(note) -> str:
    return note.created_at.astimezone().strftime("%Y-%m-%d %H:%M")


def list_notes(app: NotesApp):
    """Print the cached notes, newest first."""
    notes = app.store.notes
    if not notes:
        print("\n📭 No notes yet. Create the first one with /new.\n")
        return

    print(f"\n=== Your Notes ({len(notes)}) ===\n")
    for index, note in enumerate(notes, start=1):
        print(f"[{index}] {note.title}")
        if note.content:
            for line in note.content.rstrip().splitlines():
                print(f"    {line}")
        print(f"    🕐 {_format_time(note)}\n")


def show_draft(app: NotesApp):
    """Print the pending draft, if any."""
    draft = app.store.draft
    if draft.is_empty:
        print("\nNo draft in progress.\n")
        return

    heading = "✏️ Editing" if draft.is_editing else "📝 New note"
    print(f"\n{heading}")
    print(f"  Title: {draft.title or '(empty)'}")
    print(f"  Content: {len(draft.content)} characters")
    print("  Use /save to submit or /cancel to discard.\n")


def _resolve(app: NotesApp, args: str):
    """Find a note by its list number or id."""
    ref = args.strip()
    if not ref:
        print("Error: Give a note number from /notes.\n")
        return None

    if ref.isdigit():
        index = int(ref) - 1
        if 0 <= index < len(app.store.notes):
            return app.store.notes[index]
    else:
        note = app.store.get(ref)
        if note is not None:
            return note

    print(f"Error: No note '{ref}'. Use /notes to see the list.\n")
    return None


async def save_draft(app: NotesApp):
    """Submit the draft as a create or an update."""
    editing = app.store.draft.is_editing
    try:
        await app.store.submit_draft()
    except NotSignedIn as e:
        print(f"Error: {e.message}\n")
        return
    except NoteSyncError as e:
        print(f"Error: {e.message}")
        print("Your draft was kept. Use /save to retry or /cancel to discard.\n")
        return

    print("\n✓ Note updated!\n" if editing else "\n✓ Note created!\n")


async def new_note(app: NotesApp):
    """Compose a new note: title at the prompt, content in the editor."""
    print("\n=== New Note ===")
    app.store.clear_draft()

    title = (await ask("Title: ")).strip()
    app.store.edit_draft(title=title)
    if not title:
        print("Error: Title is required.\n")
        return

    content = await edit_text("")
    if content is None:
        print("Draft kept without content. Use /save to submit it anyway.\n")
        return

    app.store.edit_draft(content=content.strip())
    await save_draft(app)


async def edit_note(app: NotesApp, args: str):
    """Edit a note: new title at the prompt (Enter keeps it), content in the editor."""
    note = _resolve(app, args)
    if note is None:
        return

    app.store.begin_edit(note)
    print(f"\n=== Editing '{note.title}' ===")

    title = (await ask(f"Title [{note.title}]: ")).strip()
    if title:
        app.store.edit_draft(title=title)

    content = await edit_text(note.content)
    if content is not None:
        app.store.edit_draft(content=content.strip())

    draft = app.store.draft
    if draft.title == note.title and draft.content == note.content:
        app.store.cancel_edit()
        print("\nNo changes made. Note not updated.\n")
        return

    await save_draft(app)


def cancel_edit(app: NotesApp):
    app.store.cancel_edit()
    print("\n✓ Draft discarded.\n")


async def delete_note(app: NotesApp, args: str):
    """Delete a note after asking for confirmation."""
    note = _resolve(app, args)
    if note is None:
        return

    async def ask_user(target) -> bool:
        title = target.title if target is not None else note.title
        return await confirm(f"Delete note '{title}'?")

    try:
        deleted = await app.store.delete(note.id, ask_user)
    except NoteSyncError as e:
        print(f"Error: {e.message}\n")
        return

    print("\n✓ Note deleted!\n" if deleted else "\nDeletion cancelled.\n")


async def refresh_notes(app: NotesApp):
    """Reload notes from the server."""
    try:
        await app.store.refresh()
    except NoteSyncError as e:
        print(f"Error: {e.message} (showing the last loaded notes)\n")
        return
    print(f"\n✓ Notes refreshed ({len(app.store.notes)}).\n")
