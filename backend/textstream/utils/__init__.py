from textstream.utils.sse import format_sse
from textstream.utils.time import cutoff, utcnow

__all__ = ["cutoff", "format_sse", "utcnow"]
