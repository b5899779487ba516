"""Promote a user to admin (role='admin').
Usage:
  source .venv/bin/activate
  python scripts/make_admin.py --email someone@example.com
  python scripts/make_admin.py --email someone@example.com --demote
"""
import argparse
import asyncio
import sys, pathlib
from sqlmodel import select

# Ensure project root (parent of scripts/) is on sys.path
ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskhub.db import async_session
from taskhub.models import Role, Session, User
from taskhub.utils import normalize_email, now_utc
from sqlalchemy import update as sqlalchemy_update


async def run(email: str, demote: bool = False) -> int:
    target = Role.user.value if demote else Role.admin.value
    async with async_session() as sess:
        res = await sess.exec(select(User).where(User.email == normalize_email(email)))
        user = res.one_or_none()
        if not user:
            print(f'User {email} not found')
            return 1
        if user.role == target:
            print(f'User {email} already {target}')
            return 0
        user.role = target
        user.updated_at = now_utc()
        sess.add(user)
        # live sessions carry a role snapshot; keep them in step
        await sess.exec(sqlalchemy_update(Session).where(Session.user_id == user.id).values(role=target))
        await sess.commit()
        print(f'User {email} is now {target}.')
    return 0


if __name__ == '__main__':
    ap = argparse.ArgumentParser()
    ap.add_argument('--email', required=True)
    ap.add_argument('--demote', action='store_true', help='set role back to user')
    args = ap.parse_args()
    raise SystemExit(asyncio.run(run(args.email, args.demote)))
