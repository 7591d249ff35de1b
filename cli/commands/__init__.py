"""CLI command handlers."""

from .auth import confirm_user, show_identity, sign_in_user, sign_out_user, sign_up_user
from .notes import (
    cancel_edit,
    delete_note,
    edit_note,
    list_notes,
    new_note,
    refresh_notes,
    save_draft,
    show_draft,
)

__all__ = [
    # Notes commands
    "cancel_edit",
    "delete_note",
    "edit_note",
    "list_notes",
    "new_note",
    "refresh_notes",
    "save_draft",
    "show_draft",
    # Auth commands
    "confirm_user",
    "show_identity",
    "sign_in_user",
    "sign_out_user",
    "sign_up_user",
]
