#!/usr/bin/env python3
"""
IssueTrack admin CLI -- account and session maintenance without the HTTP API.

Usage:
  python main.py hash-password
  python main.py create-admin --email admin@example.com --name "Site Admin"
  python main.py purge-sessions

Passwords are always read interactively (never from argv, which leaks into
shell history and process listings).

Environment variables:
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
  DATABASE_URL   SQLAlchemy URL of the IssueTrack database.
"""

import argparse
import getpass
import logging
import sys

from auth.errors import AuthError
from auth.passwords import hash_password, validate_password_strength
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

logger = logging.getLogger("issuetrack.cli")


def _prompt_password() -> str:
    """Prompt twice and enforce the strength policy. Exits on mismatch or weak input."""
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    check = validate_password_strength(first)
    if not check.valid:
        print(f"  [!] {check.message}")
        sys.exit(1)
    return first


def _build_service(settings: Settings) -> AuthService:
    return AuthService(
        UserStore(settings.database_url),
        SessionStore(settings.database_url),
        TokenService(
            settings.secret_key,
            access_ttl=settings.token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
        ),
        require_approval=settings.registration_requires_approval,
    )


def cmd_hash_password(args: argparse.Namespace) -> int:
    """Print a PBKDF2 hash blob, e.g. for seeding a users row by hand."""
    print(hash_password(_prompt_password()))
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = _build_service(settings)
    try:
        password = "" if service.users.get_by_email(args.email) else _prompt_password()
        user = service.ensure_admin(args.email, args.name, password)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        service.users.close()
        service.sessions.close()
    print(f"  Admin ready: id={user.id} email={user.email} status={user.status}")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = _build_service(settings)
    try:
        removed = service.cleanup_expired_sessions()
    finally:
        service.users.close()
        service.sessions.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="issuetrack",
        description="IssueTrack account and session maintenance.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py hash-password
  python main.py create-admin --email admin@example.com --name "Site Admin"
  DEBUG=true python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_hash = sub.add_parser("hash-password", help="Print a password hash blob")
    p_hash.set_defaults(func=cmd_hash_password)

    p_admin = sub.add_parser(
        "create-admin",
        help="Create an approved admin account, or promote an existing one",
    )
    p_admin.add_argument("--email", required=True, help="Login email of the admin account")
    p_admin.add_argument("--name", default="Administrator", help="Display name (new accounts only)")
    p_admin.set_defaults(func=cmd_create_admin)

    p_purge = sub.add_parser("purge-sessions", help="Delete expired sessions now")
    p_purge.set_defaults(func=cmd_purge_sessions)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
