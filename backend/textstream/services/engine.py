"""
Append/Flush Engine.

Drives one stream from a caller-supplied generator. Every increment the
generator appends is fanned out to two independent sinks:

- LiveSink: a task that forwards each increment to the live transport as
  soon as it is queued. A stuck or failing transport detaches the sink;
  nothing else is affected.
- ChunkCommitter: queues the increment for a single committer task that
  buffers it, applies the flush policy and commits chunks one at a time.
  The generator never waits on storage.

The driver runs the generator under the timeout budget, then always closes
the committer (final flush) before finalizing the stream status, including
when the drive itself is cancelled at shutdown.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from textstream.models.stream import DriveOutcome, DriveToken, Increment, StreamStatus
from textstream.services.chunk_store import ChunkStore
from textstream.services.errors import StorageError, StreamClosedError
from textstream.services.flush_policy import ChunkBuffer, FlushPolicy
from textstream.services.lifecycle import StreamLifecycle

logger = logging.getLogger(__name__)

# How long a cancelled generator gets to unwind after the budget runs out (seconds)
CANCEL_GRACE_PERIOD = 1.0

# How long closing waits for queued live writes before dropping the transport (seconds)
LIVE_CLOSE_TIMEOUT = 5.0

AppendFn = Callable[..., Awaitable[None]]
Generator = Callable[[AppendFn], Awaitable[None]]

_CLOSE = object()


class LiveTransport(Protocol):
    """Delivers increments to exactly one remote peer."""

    async def send(self, increment: Increment) -> None: ...
    async def close(self, error: Optional[str] = None) -> None: ...


class LiveSink:
    """
    Forwards increments to the live transport from its own task.

    The producer only enqueues, so a slow or stuck transport never holds up
    generation or persistence. The first failure detaches the sink.
    """

    def __init__(self, stream_id: str, transport: LiveTransport):
        self.stream_id = stream_id
        self._transport = transport
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.failed = False

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"live-{self.stream_id}")

    def send(self, increment: Increment) -> None:
        if not self.failed:
            self._queue.put_nowait(increment)

    async def close(self, error: Optional[str] = None) -> None:
        """Deliver what is queued, then the terminal signal."""
        if self._task is not None:
            self._queue.put_nowait(_CLOSE)
            done, _ = await asyncio.wait({self._task}, timeout=LIVE_CLOSE_TIMEOUT)
            if not done:
                self._task.cancel()
                self.failed = True
                logger.warning(
                    f"Live transport for stream {self.stream_id} stalled, dropping it"
                )
                return
        try:
            await self._transport.close(error)
        except Exception as e:
            logger.debug(f"Error closing live transport for stream {self.stream_id}: {e}")

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            if self.failed:
                continue
            try:
                await self._transport.send(item)
            except Exception as e:
                self.failed = True
                logger.warning(
                    f"Live transport for stream {self.stream_id} failed, "
                    f"continuing with persistence only: {e}"
                )


class ChunkCommitter:
    """
    Buffers increments and commits chunks sequentially for one drive.

    Increments arrive through a queue and are consumed by one task, so
    commits never overlap and their order is the order of the text.
    """

    def __init__(self, store: ChunkStore, token: DriveToken, policy: FlushPolicy):
        self._store = store
        self._token = token
        self.buffer = ChunkBuffer(policy)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.chunks_committed = 0

    def start(self) -> None:
        self._task = asyncio.create_task(
            self._run(), name=f"commit-{self._token.stream_id}"
        )

    @property
    def failure(self) -> Optional[BaseException]:
        """The error that stopped the committer, if any."""
        if self._task is None or not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    def submit(self, increment: Increment) -> None:
        """Queue an increment for persistence. Raises if the committer has failed."""
        failure = self.failure
        if failure is not None:
            raise failure
        self._queue.put_nowait(increment)

    async def close(self) -> int:
        """
        Flush whatever is buffered and stop.

        Returns:
            Number of chunks committed during this drive

        Raises:
            StorageError: a commit failed at any point during the drive
        """
        if self._task is None:
            return self.chunks_committed
        if not self._task.done():
            self._queue.put_nowait(_CLOSE)
        await self._task
        return self.chunks_committed

    async def _commit(self, increment: Increment) -> None:
        try:
            await self._store.append_chunk(self._token, increment.text, increment.reasoning)
        except StreamClosedError as e:
            # The stream was finalized under us (e.g. expired); nothing more may be written
            raise StorageError(e.message, self._token.stream_id) from e
        self.chunks_committed += 1

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            closing = item is _CLOSE
            if not closing:
                self.buffer.add(item)
                # Fold everything already queued into the buffer before deciding
                while not self._queue.empty():
                    nxt = self._queue.get_nowait()
                    if nxt is _CLOSE:
                        closing = True
                        break
                    self.buffer.add(nxt)

            ready = self.buffer.take_ready()
            while ready is not None:
                await self._commit(ready)
                ready = self.buffer.take_ready()

            if closing:
                remainder = self.buffer.drain()
                if remainder is not None:
                    await self._commit(remainder)
                return


class StreamDriver:
    """
    Runs the begin / append-loop / finalize sequence for streams.

    One driver instance can serve many streams; all per-drive state lives in
    the sinks created for each run.
    """

    def __init__(
        self,
        lifecycle: StreamLifecycle,
        policy: Optional[FlushPolicy] = None,
        timeout: Optional[float] = None,
    ):
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.policy = policy or FlushPolicy()
        self.timeout = timeout

    async def drive(
        self,
        stream_id: str,
        transport: LiveTransport,
        generator: Generator,
    ) -> DriveOutcome:
        """
        Drive a pending stream to a terminal status.

        Raises:
            AlreadyDrivenError: the stream is not pending
            StreamNotFoundError: the stream does not exist
            StorageError: persistence failed during the drive
        """
        token = await self.lifecycle.begin_drive(stream_id)
        return await self.run(token, transport, generator)

    async def run(
        self,
        token: DriveToken,
        transport: LiveTransport,
        generator: Generator,
    ) -> DriveOutcome:
        """Run the generator for a stream already claimed with begin_drive."""
        stream_id = token.stream_id
        live = LiveSink(stream_id, transport)
        committer = ChunkCommitter(self.store, token, self.policy)
        closed = asyncio.Event()

        async def append(text: str = "", reasoning: str = "") -> None:
            if closed.is_set():
                logger.debug(f"Discarding output for closed stream {stream_id}")
                return
            increment = Increment(text=text or "", reasoning=reasoning or "")
            if increment.is_empty:
                return
            committer.submit(increment)
            live.send(increment)

        committer.start()
        live.start()
        try:
            status, error = await self._run_generator(stream_id, generator, append, closed)
        except asyncio.CancelledError:
            # Drive task itself cancelled (shutdown): flush and finalize before giving up
            closed.set()
            await asyncio.shield(self._close_interrupted(stream_id, committer, live))
            raise
        closed.set()

        return await asyncio.shield(self._complete(stream_id, committer, live, status, error))

    async def _complete(
        self,
        stream_id: str,
        committer: ChunkCommitter,
        live: LiveSink,
        status: StreamStatus,
        error: Optional[str],
    ) -> DriveOutcome:
        """Final flush, terminal status, then close the live transport."""
        try:
            chunks = await committer.close()
        except StorageError as e:
            logger.error(f"Persistence failed for stream {stream_id}: {e.message}")
            await self._finalize_after_storage_failure(stream_id)
            await live.close(e.message)
            raise

        try:
            final_status = await self.lifecycle.finalize(stream_id, status)
        except StorageError as e:
            logger.error(f"Could not finalize stream {stream_id}: {e.message}")
            await live.close(e.message)
            raise
        await live.close(error)

        logger.info(
            f"Drive of stream {stream_id} finished: {final_status.value}, "
            f"{chunks} chunk(s), transport {'failed' if live.failed else 'ok'}"
        )
        return DriveOutcome(
            stream_id=stream_id,
            status=final_status,
            chunks_committed=chunks,
            transport_failed=live.failed,
            error=error,
        )

    async def _run_generator(
        self,
        stream_id: str,
        generator: Generator,
        append: AppendFn,
        closed: asyncio.Event,
    ) -> tuple[StreamStatus, Optional[str]]:
        """Run the generator under the time budget and map how it ended to a status."""
        task = asyncio.create_task(generator(append), name=f"generate-{stream_id}")
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            logger.warning(f"Stream {stream_id} exceeded its {self.timeout}s budget")
            closed.set()
            task.cancel()
            # A generator that ignores cancellation keeps running; its output is discarded
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            await asyncio.wait({task}, timeout=CANCEL_GRACE_PERIOD)
            return StreamStatus.TIMEOUT, f"Timeout after {self.timeout}s"

        if task.cancelled():
            return StreamStatus.ERROR, "Generator cancelled"
        exc = task.exception()
        if exc is not None:
            if isinstance(exc, StorageError):
                # Surfaced through append; reported again by committer.close()
                return StreamStatus.ERROR, exc.message
            logger.error(f"Generator for stream {stream_id} failed: {exc!r}")
            return StreamStatus.ERROR, str(exc) or exc.__class__.__name__
        return StreamStatus.DONE, None

    async def _close_interrupted(
        self,
        stream_id: str,
        committer: ChunkCommitter,
        live: LiveSink,
    ) -> None:
        """Flush and finalize as timeout a drive cut short by cancellation."""
        error = "Drive interrupted"
        try:
            await committer.close()
        except StorageError as e:
            logger.error(f"Persistence failed for interrupted stream {stream_id}: {e.message}")
            await self._finalize_after_storage_failure(stream_id)
            await live.close(e.message)
            return

        try:
            await self.lifecycle.finalize(stream_id, StreamStatus.TIMEOUT)
            logger.warning(f"Drive of stream {stream_id} interrupted, finalized as timeout")
        except StorageError as e:
            logger.error(f"Could not finalize interrupted stream {stream_id}: {e.message}")
            error = e.message
        await live.close(error)

    async def _finalize_after_storage_failure(self, stream_id: str) -> None:
        try:
            await self.lifecycle.finalize(stream_id, StreamStatus.ERROR)
        except StorageError as e:
            logger.error(f"Could not finalize stream {stream_id} after storage failure: {e.message}")
