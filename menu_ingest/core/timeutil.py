"""
Epoch-millisecond timestamps used by upload records and metadata.
"""
import time


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)
