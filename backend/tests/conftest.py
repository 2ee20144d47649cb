"""
Pytest configuration for backend tests.

Every test gets its own SQLite file so drives, claims and reads go through a
real database with real transactions.
"""
import asyncio
import os
from typing import Awaitable, Callable, List, Optional

# Keep the module-level engine away from the real data directory
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from textstream.database import init_db
from textstream.models.stream import Increment
from textstream.services.chunk_store import ChunkStore
from textstream.services.lifecycle import StreamLifecycle
from textstream.services.reader import StreamReader


class RecordingTransport:
    """LiveTransport that remembers everything it was given."""

    def __init__(self):
        self.sent: List[Increment] = []
        self.closed = False
        self.close_error: Optional[str] = None

    async def send(self, increment: Increment) -> None:
        self.sent.append(increment)

    async def close(self, error: Optional[str] = None) -> None:
        self.closed = True
        self.close_error = error


class FailingTransport(RecordingTransport):
    """LiveTransport whose peer disappears after `fail_after` writes."""

    def __init__(self, fail_after: int):
        super().__init__()
        self.fail_after = fail_after
        self.attempts = 0

    async def send(self, increment: Increment) -> None:
        self.attempts += 1
        if len(self.sent) >= self.fail_after:
            raise ConnectionResetError("client went away")
        await super().send(increment)


async def eventually(
    check: Callable[[], Awaitable[bool]],
    timeout: float = 3.0,
    interval: float = 0.01,
) -> None:
    """Poll an async condition until it holds or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if await check():
            return
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'streams.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> ChunkStore:
    return ChunkStore(session_factory)


@pytest.fixture
def lifecycle(store) -> StreamLifecycle:
    return StreamLifecycle(store)


@pytest.fixture
def reader(store) -> StreamReader:
    return StreamReader(store)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
