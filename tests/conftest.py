import os
import sys
import pathlib
import uuid
import warnings

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except ImportError:
    pass

# Ensure a secure SECRET_KEY is available during tests so the app lifespan
# check in `taskhub.main` doesn't raise. Set a deterministic test-only key.
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')
# Keep test data out of the development database. taskhub.db reads this at
# import time so it must be set before the app is imported below.
os.environ.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///./test_taskhub.db')

# Reduce SQLAlchemy logger verbosity during tests
import logging as _logging
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlmodel'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from taskhub.main import app
from taskhub.db import init_db, async_session
from taskhub.auth import register
from taskhub.models import Role, User

TEST_PASSWORD = 'secret123'


def unique_email(prefix: str = 'user') -> str:
    # tests share one database file across runs; keep emails unique
    return f'{prefix}-{uuid.uuid4().hex[:10]}@example.com'


@pytest_asyncio.fixture
async def ensure_db():
    await init_db()


@pytest_asyncio.fixture
async def make_user(ensure_db):
    """Factory fixture: ``await make_user(admin=False)`` returns a stored User.

    Every user gets the password ``TEST_PASSWORD``.
    """
    async def _make(prefix: str = 'user', admin: bool = False, display_name: str | None = None) -> User:
        user = await register(display_name or prefix.title(), '555-0100', unique_email(prefix), TEST_PASSWORD)
        if admin:
            # registration never grants admin; promote directly like scripts/make_admin.py
            async with async_session() as sess:
                user.role = Role.admin.value
                sess.add(user)
                await sess.commit()
                await sess.refresh(user)
        return user
    return _make


@pytest_asyncio.fixture
async def anon_client(ensure_db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def login_client(ensure_db):
    """Factory fixture: ``await login_client(user)`` returns a client holding
    that user's session cookie. Clients are closed at teardown."""
    opened = []

    async def _login(user: User) -> AsyncClient:
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        opened.append(ac)
        r = await ac.post('/login', json={'email': user.email, 'password': TEST_PASSWORD})
        assert r.status_code == 200, r.text
        assert ac.cookies.get('session_token')
        return ac

    yield _login
    for ac in opened:
        await ac.aclose()


@pytest_asyncio.fixture
async def client(make_user, login_client):
    """A client logged in as a fresh regular user; the user is ``client.user``."""
    user = await make_user('owner')
    ac = await login_client(user)
    ac.user = user
    yield ac
