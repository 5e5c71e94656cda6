#!/usr/bin/env python3
"""
RoleGate -- operator CLI.

Usage:
  python main.py seed
  python main.py create-admin --name "Ana Admin" --email ana@example.com --password 'changeme123'

Commands:
  seed          Create the default permissions (profile.read, users.read,
                users.manage) and roles (admin, usuario). Safe to re-run.
  create-admin  Seed, then create a user holding the admin role. If the email
                is already registered, the admin role is added to that user.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the RoleGate database.
  SECRET_KEY    Required unless DEBUG=true (see core/config.py).
"""

import argparse
import logging
import sys

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings
from rbac.seed import seed_defaults
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.cli")

PASSWORD_MIN_LENGTH = 8


def _seed(rbac: RBACStore) -> int:
    seed_defaults(rbac)
    print("Default roles and permissions are in place.")
    return 0


def _create_admin(users: UserStore, rbac: RBACStore, name: str, email: str, password: str) -> int:
    if len(password) < PASSWORD_MIN_LENGTH:
        print(f"  [!] Password must be at least {PASSWORD_MIN_LENGTH} characters.")
        return 2
    seed_defaults(rbac)
    user = users.get_by_email(email)
    if user is None:
        user_id = users.create_user(User(name=name, email=email, hashed_password=hash_password(password)))
        print(f"Created user {email.lower()} (id={user_id}).")
    else:
        user_id = user.id
        print(f"User {user.email} already exists (id={user_id}); password left unchanged.")
    rbac.add_user_roles(user_id, ["admin"])
    logger.info("Granted admin role to user id=%d from the CLI", user_id)
    print("Admin role granted.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="rolegate",
        description="RoleGate operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed
  python main.py create-admin --name "Ana Admin" --email ana@example.com --password 'changeme123'
  DATABASE_URL=sqlite:///./prod.db python main.py seed
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.add_parser("seed", help="Create the default roles and permissions")
    create_admin = commands.add_parser("create-admin", help="Create (or promote) an admin account")
    create_admin.add_argument("--name", required=True, help="Display name of the admin")
    create_admin.add_argument("--email", required=True, help="Login email of the admin")
    create_admin.add_argument("--password", required=True, help=f"At least {PASSWORD_MIN_LENGTH} characters")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    settings = get_settings()
    users = UserStore(settings.database_url)
    rbac = RBACStore(settings.database_url)
    try:
        if args.command == "seed":
            return _seed(rbac)
        return _create_admin(users, rbac, args.name, args.email.strip(), args.password)
    finally:
        rbac.close()
        users.close()


if __name__ == "__main__":
    sys.exit(main())
