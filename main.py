#!/usr/bin/env python3
"""
QuestRider Auth -- administrative command line.

Accounts normally come into existence through the register / verify-otp
flow, which always assigns the default role. Admins and educators are seeded
here instead.

Usage:
  python main.py create-user --email admin@questrider.com --name "System Admin" --role admin
  python main.py create-user --email edu@questrider.com --name "Jane Smith" --role educator --phone 1111111111
  python main.py revoke --email a@x.com
  python main.py purge-pending

Environment variables:
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
  DATABASE_URL   Store location. Defaults to auth/questrider_auth.db.
"""

import argparse
import getpass
import logging
import sys

from auth.engine import AuthEngine, build_auth_engine, normalize_email
from auth.errors import AuthError
from auth.models import Role
from core.config import get_settings

logger = logging.getLogger("questrider.cli")


def _read_password() -> str:
    """Prompt twice for a password without echoing it. Returns "" on mismatch or short input."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return ""
    if len(first) < 8:
        print("  [!] Password must be at least 8 characters.")
        return ""
    return first


def create_user(engine: AuthEngine, args: argparse.Namespace) -> int:
    password = args.password or _read_password()
    if not password:
        return 1
    summary = engine.create_user(args.email, password, args.name, args.phone, args.role)
    print(f"  Created {summary.role} {summary.email} (id {summary.id})")
    return 0


def revoke(engine: AuthEngine, args: argparse.Namespace) -> int:
    user = engine.users.get_by_email(normalize_email(args.email))
    if user is None:
        print(f"  [!] No account for {args.email}.")
        return 1
    engine.logout(user.id)
    print(f"  Refresh token revoked for {user.email}. Access tokens expire on their own.")
    return 0


def purge_pending(engine: AuthEngine, args: argparse.Namespace) -> int:
    removed = engine.purge_expired_registrations()
    print(f"  Removed {removed} expired pending registration(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="questrider-auth",
        description="Administrative commands for the QuestRider auth store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_create = sub.add_parser("create-user", help="Create an activated account with any role")
    p_create.add_argument("--email", required=True)
    p_create.add_argument("--name", required=True)
    p_create.add_argument("--phone", default=None, help="Optional phone number")
    p_create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.admin.value,
        help="Account role (default: admin)",
    )
    p_create.add_argument(
        "--password",
        default=None,
        help="Password (prompted if omitted; avoid on shared machines, it lands in shell history)",
    )
    p_create.set_defaults(handler=create_user)

    p_revoke = sub.add_parser("revoke", help="Clear a user's refresh token (forces re-login)")
    p_revoke.add_argument("--email", required=True)
    p_revoke.set_defaults(handler=revoke)

    p_purge = sub.add_parser("purge-pending", help="Delete expired pending registrations")
    p_purge.set_defaults(handler=purge_pending)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0

    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    engine = build_auth_engine(get_settings())
    try:
        return args.handler(engine, args)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
