#!/usr/bin/env python3
"""Admin script to add a user to the app DB.

Usage:
    python scripts/add_user.py email "Display Name" phone [password] [--admin]

This will ensure the DB is initialized, register the user through the same
validation as the web form, and optionally promote them to admin.
"""
# Make the script runnable from the project root or from anywhere by
# adding the project root to sys.path.
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio
import getpass


async def _create(email: str, display_name: str, phone: str, password: str, is_admin: bool = False):
    # Import app modules lazily so running `-h` doesn't require the runtime
    # dependencies or touch the database.
    from taskhub.db import init_db, async_session
    from taskhub.auth import register
    from taskhub.models import Role
    await init_db()
    user = await register(display_name, phone, email, password)
    if is_admin:
        async with async_session() as sess:
            user.role = Role.admin.value
            sess.add(user)
            await sess.commit()
            await sess.refresh(user)
    return user


def parse_args(argv):
    p = argparse.ArgumentParser(description="Create a user in the app DB")
    p.add_argument("email", help="login email")
    p.add_argument("display_name", help="name shown in the UI")
    p.add_argument("phone", help="contact phone")
    # make password optional; if omitted we'll prompt securely
    p.add_argument("password", nargs="?", help="password for the user (omit to prompt)")
    p.add_argument("--admin", action="store_true", help="mark user as admin")
    p.add_argument("--db", default=None, help="path to sqlite file to use (default ./taskhub.db)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv or sys.argv[1:])
    # The taskhub.db module reads DATABASE_URL at import time to configure the engine.
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    password = args.password
    if not password:
        pw = getpass.getpass("Password: ")
        pw2 = getpass.getpass("Confirm password: ")
        if pw != pw2:
            print("Passwords do not match", file=sys.stderr)
            return 2
        password = pw

    from taskhub.errors import TaskHubError
    try:
        user = asyncio.run(_create(args.email, args.display_name, args.phone, password, args.admin))
    except TaskHubError as e:
        print(f"Operation failed: {e.message}", file=sys.stderr)
        return 2
    print(f"User '{user.email}' ({user.role}) saved with id={user.id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
