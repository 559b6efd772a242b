#!/usr/bin/env python3
"""
Member Registry -- command-line administration.

Works directly against the configured storage backend (STORAGE_BACKEND,
DATABASE_URL), so accounts can be created before the API is ever started.

Usage:
  python main.py create-user alice --display-name "Alice Admin"
  python main.py list-members
  python main.py list-members --verified false
  python main.py list-members --json

Environment variables:
  SECRET_KEY / DEBUG   Same rules as the API (see core/config.py).
  DATABASE_URL         SQLAlchemy URL of the registry database.
"""

import argparse
import json
import sys
from getpass import getpass
from typing import Optional

from auth.tokens import hash_password
from core.config import MAX_PASSWORD_BYTES, get_settings
from registry.errors import ConflictError, StorageError
from registry.models import Member, User
from registry.storage import MemberStorage, open_storage

_MIN_PASSWORD = 6


def _read_password() -> Optional[str]:
    """Prompt twice for a password. Returns None if the entries differ or the length is out of range."""
    first = getpass("Password: ")
    if len(first) < _MIN_PASSWORD:
        print(f"  [!] Password must be at least {_MIN_PASSWORD} characters.")
        return None
    if len(first.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return None
    if getpass("Repeat password: ") != first:
        print("  [!] Passwords do not match.")
        return None
    return first


def _cmd_create_user(storage: MemberStorage, args: argparse.Namespace) -> int:
    password = _read_password()
    if password is None:
        return 1
    try:
        user = storage.create_user(
            User(
                username=args.username,
                hashed_password=hash_password(password),
                display_name=args.display_name or args.username,
            )
        )
    except ConflictError:
        print(f"  [!] Username '{args.username}' is already taken.")
        return 1
    print(f"  Created user '{user.username}' (id {user.id}).")
    return 0


def _member_row(member: Member) -> str:
    mark = "yes" if member.verified else "no"
    return f"  {member.id:>5}  {member.name[:28]:<28}  {member.email[:32]:<32}  {mark:<8}  {member.date_added[:10]}"


def _cmd_list_members(storage: MemberStorage, args: argparse.Namespace) -> int:
    verified: Optional[bool] = None
    if args.verified is not None:
        verified = args.verified == "true"
    members = storage.filter_members(verified=verified)

    if args.json:
        print(
            json.dumps(
                [
                    {
                        "id": m.id,
                        "name": m.name,
                        "email": m.email,
                        "phone": m.phone,
                        "dob": m.dob,
                        "verified": m.verified,
                        "dateAdded": m.date_added,
                    }
                    for m in members
                ],
                indent=2,
            )
        )
        return 0

    if not members:
        print("  No members found.")
        return 0
    print(f"  {'ID':>5}  {'Name':<28}  {'Email':<32}  {'Verified':<8}  Added")
    print("  " + "─" * 88)
    for member in members:
        print(_member_row(member))
    print(f"\n  {len(members)} member(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="member-registry",
        description="Administer the member registry from the command line.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user alice --display-name "Alice Admin"
  python main.py list-members --verified true
  python main.py list-members --json > members.json
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create a login account (prompts for the password)")
    create.add_argument("username", help="Login name, at least 3 characters")
    create.add_argument("--display-name", metavar="NAME", help="Name shown in the UI (default: the username)")

    listing = sub.add_parser("list-members", help="Print registered members, newest first")
    listing.add_argument(
        "--verified",
        choices=["true", "false"],
        default=None,
        help="Only show verified (true) or unverified (false) members",
    )
    listing.add_argument("--json", action="store_true", help="Output JSON instead of a table")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    if args.command == "create-user" and len(args.username) < 3:
        print("  [!] Username must be at least 3 characters.")
        return 1

    try:
        storage = open_storage(get_settings())
    except StorageError as exc:
        print(f"  [!] {exc.message}")
        return 1

    try:
        if args.command == "create-user":
            return _cmd_create_user(storage, args)
        return _cmd_list_members(storage, args)
    except StorageError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        storage.close()


if __name__ == "__main__":
    sys.exit(main())
