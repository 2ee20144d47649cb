"""
Stream domain types.

StreamStatus is the closed set of lifecycle states; the legal transitions
between them are kept in one table so every status change is validated in
the same place.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional


class StreamStatus(str, Enum):
    """Lifecycle status of a stream."""

    PENDING = "pending"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[StreamStatus] = frozenset(
    {StreamStatus.DONE, StreamStatus.ERROR, StreamStatus.TIMEOUT}
)

ALLOWED_TRANSITIONS: Dict[StreamStatus, FrozenSet[StreamStatus]] = {
    StreamStatus.PENDING: frozenset({StreamStatus.STREAMING}),
    StreamStatus.STREAMING: TERMINAL_STATUSES,
    StreamStatus.DONE: frozenset(),
    StreamStatus.ERROR: frozenset(),
    StreamStatus.TIMEOUT: frozenset(),
}


def can_transition(current: StreamStatus, new: StreamStatus) -> bool:
    """Check whether moving from `current` to `new` is a legal transition."""
    return new in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class DriveToken:
    """Authorization to append to a stream, handed out once by begin_drive."""

    stream_id: str
    token: str


@dataclass(frozen=True)
class Increment:
    """
    One piece of generator output.

    Attributes:
        text: Primary text delta
        reasoning: Auxiliary reasoning delta (parallel channel, may be empty)
    """

    text: str = ""
    reasoning: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.reasoning


@dataclass(frozen=True)
class ChunkRecord:
    """A committed, immutable chunk of a stream."""

    stream_id: str
    sequence: int
    text: str
    reasoning: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class StreamBody:
    """Durable reconstruction of a stream: concatenated chunks plus status."""

    stream_id: str
    text: str
    reasoning: str
    status: StreamStatus


@dataclass(frozen=True)
class DriveOutcome:
    """
    Result of a finished drive.

    Attributes:
        status: Terminal status the stream was finalized with
        chunks_committed: Number of chunks this drive persisted
        transport_failed: Whether the live transport failed mid-drive
        error: Generator error text (error/timeout outcomes only)
    """

    stream_id: str
    status: StreamStatus
    chunks_committed: int = 0
    transport_failed: bool = False
    error: Optional[str] = None
