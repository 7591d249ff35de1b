"""Terminal input helpers that keep the event loop free while waiting."""

import asyncio
import getpass
import os
import shutil
import subprocess
import tempfile
from pathlib import Path


async def ask(prompt: str) -> str:
    """Read a line without blocking change notifications."""
    return await asyncio.to_thread(input, prompt)


async def ask_secret(prompt: str) -> str:
    return await asyncio.to_thread(getpass.getpass, prompt)


async def confirm(question: str) -> bool:
    answer = (await ask(f"{question} [y/N]: ")).strip().lower()
    return answer in ("y", "yes")


def _get_editor() -> str:
    """Get the user's preferred text editor."""
    editor = os.environ.get("EDITOR") or os.environ.get("VISUAL")
    if editor:
        return editor

    if os.name == "nt":
        return "notepad"

    for editor_cmd in ("nano", "vim", "vi"):
        if shutil.which(editor_cmd):
            return editor_cmd

    # Fallback to vi (should exist on all Unix systems)
    return "vi"


def _run_editor(initial: str) -> str | None:
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".md", delete=False, encoding="utf-8"
    ) as tmp_file:
        tmp_file.write(initial)
        tmp_path = Path(tmp_file.name)

    editor = _get_editor()
    try:
        subprocess.run([editor, str(tmp_path)], check=True)
    except subprocess.CalledProcessError:
        print(f"\nError: Editor '{editor}' exited with an error.\n")
        return None
    except FileNotFoundError:
        print(f"\nError: Editor '{editor}' not found.")
        print("You can set your preferred editor with: export EDITOR=nano\n")
        return None
    else:
        return tmp_path.read_text(encoding="utf-8")
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


async def edit_text(initial: str = "") -> str | None:
    """Open the user's editor on ``initial`` and return the saved text.

    Returns None if the editor could not be run.
    """
    print(f"\nOpening editor ({_get_editor()}). Save and close it to continue.\n")
    return await asyncio.to_thread(_run_editor, initial)
