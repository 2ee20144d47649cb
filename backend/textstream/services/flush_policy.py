"""
Flush policy.

Decides when buffered generator output becomes a committed chunk:
- at the last sentence boundary that already has content after it
- when the buffer grows past a size threshold without a usable boundary
- at the end of the drive (drain)

The boundary rule is a regular expression so callers can tune it; the
default only treats `.`, `!` and `?` as boundaries when whitespace follows,
which keeps decimals like 3.14 and most URLs intact, and treats every
newline as a boundary.
"""

import re
from typing import Optional, Pattern, Tuple, Union

from textstream.models.stream import Increment

DEFAULT_BOUNDARY_PATTERN = r"[.!?](?=\s)|\n"
DEFAULT_MAX_CHARS = 400


class FlushPolicy:
    """Configurable boundary predicate plus size threshold."""

    def __init__(
        self,
        boundary_pattern: Union[str, Pattern[str]] = DEFAULT_BOUNDARY_PATTERN,
        max_chars: int = DEFAULT_MAX_CHARS,
    ):
        if max_chars < 1:
            raise ValueError("max_chars must be positive")
        self.pattern = re.compile(boundary_pattern) if isinstance(boundary_pattern, str) else boundary_pattern
        self.max_chars = max_chars

    def find_cut(self, buffer: str) -> int:
        """
        Find where to cut the buffer.

        Scans for the last boundary that is followed by non-whitespace content
        and returns the index just past that boundary and the whitespace after
        it. Returns 0 when no boundary qualifies.
        """
        content_end = len(buffer.rstrip())
        cut = 0
        for match in self.pattern.finditer(buffer, 0, content_end):
            end = match.end()
            if end < content_end:
                cut = end
        if not cut:
            return 0
        # Trailing whitespace belongs to the committed sentence
        while cut < content_end and buffer[cut].isspace():
            cut += 1
        return cut

    def split(self, buffer: str) -> Tuple[str, str]:
        """
        Split a buffer into (ready, remainder).

        `ready` is empty when nothing should be committed yet.
        """
        cut = self.find_cut(buffer)
        if cut:
            return buffer[:cut], buffer[cut:]
        if len(buffer) > self.max_chars:
            return buffer, ""
        return "", buffer


class ChunkBuffer:
    """
    In-memory accumulation for one stream.

    Text and reasoning accumulate in parallel and are split by the same
    policy; whenever either channel has something ready both channels
    contribute their ready part to the same chunk, so the two channels
    share chunk boundaries.
    """

    def __init__(self, policy: Optional[FlushPolicy] = None):
        self.policy = policy or FlushPolicy()
        self._text = ""
        self._reasoning = ""

    @property
    def pending(self) -> Increment:
        """What is buffered but not yet committed."""
        return Increment(text=self._text, reasoning=self._reasoning)

    def add(self, increment: Increment) -> None:
        self._text += increment.text
        self._reasoning += increment.reasoning

    def take_ready(self) -> Optional[Increment]:
        """Remove and return the part of the buffer the policy says to commit."""
        ready_text, rest_text = self.policy.split(self._text)
        ready_reasoning, rest_reasoning = self.policy.split(self._reasoning)
        if not ready_text and not ready_reasoning:
            return None
        self._text = rest_text
        self._reasoning = rest_reasoning
        return Increment(text=ready_text, reasoning=ready_reasoning)

    def drain(self) -> Optional[Increment]:
        """Remove and return everything buffered, or None if the buffer is empty."""
        chunk = self.pending
        self._text = ""
        self._reasoning = ""
        return None if chunk.is_empty else chunk
