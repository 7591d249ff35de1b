"""Main CLI client with REPL loop."""

import asyncio
import os

from connectors.backend import BackendConnector, FileTokenStore
from core import NotesApp

from .commands import (
    cancel_edit,
    confirm_user,
    delete_note,
    edit_note,
    list_notes,
    new_note,
    refresh_notes,
    save_draft,
    show_draft,
    show_identity,
    sign_in_user,
    sign_out_user,
    sign_up_user,
)
from .commands.prompts import ask
from .config import API_URL, REQUEST_TIMEOUT, TOKEN_FILE, configure_logging

# Commands available only with an active session
NOTE_COMMANDS = {"/notes", "/new", "/edit", "/save", "/cancel", "/draft", "/delete", "/refresh"}


def print_help():
    print("\nAuth Commands:")
    print("  /signup - Create a new account")
    print("  /confirm <token> - Confirm your email address")
    print("  /signin - Sign in to an existing account")
    print("  /signout - Sign out")
    print("  /whoami - Show the signed-in account")
    print("\nNote Commands:")
    print("  /notes - List your notes (newest first)")
    print("  /new - Write a new note")
    print("  /edit <n> - Edit note number n")
    print("  /save - Submit the current draft")
    print("  /cancel - Discard the current draft")
    print("  /draft - Show the current draft")
    print("  /delete <n> - Delete note number n")
    print("  /refresh - Reload notes from the server")
    print("\nUtility Commands:")
    print("  /clear - Clear the terminal screen")
    print("  /help - Show this help")
    print("\nType 'exit' or 'quit' to leave.\n")


def show_notice(message: str):
    """Print a background update without waiting for the prompt."""
    print(f"\n🔄 {message}\nYou: ", end="", flush=True)


async def dispatch(app: NotesApp, backend: BackendConnector, command: str, args: str) -> bool:
    """Run one command. Returns False for unknown commands."""
    if command in NOTE_COMMANDS and not app.session.signed_in:
        print("Error: You must be signed in. Use /signin or /signup.\n")
        return True

    if command == "/signup":
        await sign_up_user(app)
    elif command == "/confirm":
        await confirm_user(backend.identity, args)
    elif command == "/signin":
        if app.session.signed_in:
            print("You are already signed in. Use /signout first.\n")
        else:
            await sign_in_user(app)
    elif command == "/signout":
        await sign_out_user(app)
    elif command == "/whoami":
        show_identity(app)
    elif command == "/notes":
        list_notes(app)
    elif command == "/new":
        await new_note(app)
    elif command == "/edit":
        await edit_note(app, args)
    elif command == "/save":
        await save_draft(app)
    elif command == "/cancel":
        cancel_edit(app)
    elif command == "/draft":
        show_draft(app)
    elif command == "/delete":
        await delete_note(app, args)
    elif command == "/refresh":
        await refresh_notes(app)
    elif command == "/clear":
        # Clear terminal screen (cross-platform)
        os.system("cls" if os.name == "nt" else "clear")
    elif command == "/help":
        print_help()
    else:
        return False
    return True


async def run():
    """CLI client for the Livenotes API."""
    configure_logging()

    print("Welcome to Livenotes!")
    print_help()

    async with BackendConnector(
        API_URL, token_store=FileTokenStore(TOKEN_FILE), timeout=REQUEST_TIMEOUT
    ) as backend:
        app = NotesApp(
            backend.identity, backend.notes, timeout=REQUEST_TIMEOUT, on_notice=show_notice
        )

        print("⏳ Loading...")
        await app.start()
        if app.session.signed_in:
            print(f"✓ Signed in as {app.session.identity.email}.\n")
        else:
            print("⚠ You are not signed in. Please /signin or /signup.\n")

        try:
            while True:
                try:
                    user_input = (await ask("You: ")).strip()
                except EOFError:
                    print("\n\nGoodbye!")
                    break

                if user_input.lower() in ["exit", "quit"]:
                    print("\nGoodbye!")
                    break

                if not user_input:
                    continue

                command, _, args = user_input.partition(" ")
                if not await dispatch(app, backend, command.lower(), args):
                    print(f"Unknown command '{command}'. Type /help for the list.\n")
        finally:
            app.close()


def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
