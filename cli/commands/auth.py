"""Authentication command handlers."""

from core import IdentityError, NotesApp, RemoteError

from .prompts import ask, ask_secret


async def sign_up_user(app: NotesApp):
    """Create an account. The server sends a confirmation token out of band."""
    print("\n=== Sign Up ===")
    email = (await ask("Email: ")).strip()
    password = await ask_secret("Password (min 6 characters): ")

    if not email or not password:
        print("Error: Email and password are required.\n")
        return

    try:
        await app.session.sign_up(email, password)
    except IdentityError as e:
        print(f"Error: {e.message}\n")
        return

    print("\n✓ Account created! Check your email to confirm it, then /signin.\n")


async def confirm_user(identity, args: str):
    """Redeem a confirmation token."""
    token = args.strip() or (await ask("Confirmation token: ")).strip()
    if not token:
        print("Error: Confirmation token is required.\n")
        return

    try:
        await identity.confirm(token)
    except RemoteError as e:
        print(f"Error: {e.message}\n")
        return

    print("\n✓ Email confirmed! You can now /signin.\n")


async def sign_in_user(app: NotesApp):
    """Sign in with email and password."""
    print("\n=== Sign In ===")
    email = (await ask("Email: ")).strip()
    password = await ask_secret("Password: ")

    if not email or not password:
        print("Error: Email and password are required.\n")
        return

    try:
        await app.session.sign_in(email, password)
    except IdentityError as e:
        print(f"Error: {e.message}\n")
        return

    print(f"\n✓ Signed in as {app.session.identity.email if app.session.identity else email}.\n")


async def sign_out_user(app: NotesApp):
    """Sign out and drop the local notes."""
    try:
        await app.sign_out()
    except IdentityError as e:
        print(f"Error: {e.message} (local session cleared)\n")
        return
    print("\n👋 Signed out.\n")


def show_identity(app: NotesApp):
    """Print who is signed in."""
    identity = app.session.identity
    if identity is None:
        print("\nNot signed in.\n")
        return
    print(f"\n👤 {identity.email}")
    print(f"  User ID: {identity.id}\n")
