from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import text
from sqlalchemy.pool import NullPool
from sqlalchemy.exc import OperationalError
from contextlib import asynccontextmanager

import os
import logging

from .errors import StoreUnavailable
# register tables on SQLModel.metadata
from . import models  # noqa: F401

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./taskhub.db")

# Use NullPool to avoid connection-pool objects being bound to a specific
# event loop (which can cause 'bound to a different event loop' errors
# when every test runs on its own loop).
engine = create_async_engine(DATABASE_URL, echo=False, future=True, poolclass=NullPool)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    async with engine.begin() as conn:
        # create tables
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info('database ready (%s)', DATABASE_URL)


async def ping_db() -> bool:
    """Return True when a trivial query succeeds; used by health checks."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text('SELECT 1'))
        return True
    except Exception:
        logger.exception('database ping failed')
        return False


@asynccontextmanager
async def store_session():
    """Open a session; driver-level failures surface as StoreUnavailable."""
    try:
        async with async_session() as sess:
            yield sess
    except OperationalError as e:
        logger.exception('store unavailable')
        raise StoreUnavailable() from e
