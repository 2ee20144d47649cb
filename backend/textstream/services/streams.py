"""
Stream service.

Wires the store, lifecycle manager, engine and reader together and owns the
background tasks that run drives. A drive started over HTTP outlives the
request that started it: the response only reads from the transport, so a
client disconnect never cancels generation or persistence.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from textstream.config import settings
from textstream.database import async_session
from textstream.models.stream import DriveOutcome, DriveToken
from textstream.services.chunk_store import ChunkStore
from textstream.services.engine import Generator, LiveTransport, StreamDriver
from textstream.services.errors import StorageError
from textstream.services.flush_policy import FlushPolicy
from textstream.services.lifecycle import StreamLifecycle
from textstream.services.reader import StreamReader

logger = logging.getLogger(__name__)


class StreamService:
    """Facade over the streaming components plus background drive tracking."""

    # Maximum time to wait for active drives during shutdown (seconds)
    SHUTDOWN_TIMEOUT = 10.0

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: Optional[FlushPolicy] = None,
        timeout: Optional[float] = None,
    ):
        self.store = ChunkStore(session_factory)
        self.lifecycle = StreamLifecycle(self.store)
        self.reader = StreamReader(self.store)
        self.driver = StreamDriver(self.lifecycle, policy, timeout)
        self._active_drives: Dict[str, asyncio.Task] = {}

    async def start_drive(
        self,
        stream_id: str,
        transport: LiveTransport,
        generator: Generator,
    ) -> asyncio.Task:
        """
        Claim the stream and run the drive in a background task.

        begin_drive runs before this returns, so a duplicate driver gets
        AlreadyDrivenError synchronously.
        """
        token = await self.lifecycle.begin_drive(stream_id)
        task = asyncio.create_task(
            self._run_drive(token, transport, generator),
            name=f"drive-{stream_id}",
        )
        self._active_drives[stream_id] = task
        logger.info(f"Started drive: {stream_id}")
        return task

    async def _run_drive(
        self,
        token: DriveToken,
        transport: LiveTransport,
        generator: Generator,
    ) -> Optional[DriveOutcome]:
        try:
            return await self.driver.run(token, transport, generator)
        except StorageError as e:
            logger.error(f"Drive {token.stream_id} aborted by storage failure: {e.message}")
            return None
        except Exception:
            logger.exception(f"Drive {token.stream_id} failed unexpectedly")
            return None
        finally:
            self._active_drives.pop(token.stream_id, None)

    def is_active(self, stream_id: str) -> bool:
        """Check if a drive for the stream is running in this process."""
        return stream_id in self._active_drives

    @property
    def active_count(self) -> int:
        """Number of drives currently running."""
        return len(self._active_drives)

    async def expire_stale(self, max_age: Optional[timedelta] = None) -> int:
        """Time out streams left streaming by a driver that is gone."""
        if max_age is None:
            max_age = timedelta(minutes=settings.stream_expiry_minutes)
        return await self.lifecycle.expire_stale(max_age)

    async def shutdown(self) -> None:
        """Wait for running drives, cancelling whatever is left after the timeout."""
        tasks = list(self._active_drives.values())
        if not tasks:
            return
        logger.info(f"Waiting for {len(tasks)} active drive(s) to finish...")
        _, pending = await asyncio.wait(tasks, timeout=self.SHUTDOWN_TIMEOUT)
        if not pending:
            return
        logger.warning(
            f"Shutdown timeout: cancelling {len(pending)} drive(s) after "
            f"{self.SHUTDOWN_TIMEOUT}s"
        )
        for task in pending:
            task.cancel()
        # Cancelled drives still flush and finalize before they finish
        await asyncio.gather(*pending, return_exceptions=True)


def create_stream_service(
    session_factory: async_sessionmaker[AsyncSession] = async_session,
) -> StreamService:
    """Build a StreamService from settings."""
    policy = FlushPolicy(
        boundary_pattern=settings.flush_boundary_pattern,
        max_chars=settings.flush_max_chars,
    )
    return StreamService(session_factory, policy=policy, timeout=settings.drive_timeout)


# Singleton instance
stream_service = create_stream_service()


def get_stream_service() -> StreamService:
    """FastAPI dependency returning the process-wide StreamService."""
    return stream_service
