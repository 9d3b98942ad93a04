"""
Common utility functions for timing and reporting.
"""

import time

__all__ = [
    "elapsed_ms",
    "format_duration",
]


def elapsed_ms(started_at: float) -> int:
    """Milliseconds since *started_at*, a :func:`time.monotonic` reading."""
    return max(0, int(round((time.monotonic() - started_at) * 1000)))


def format_duration(ms: int) -> str:
    """Format a millisecond duration as seconds, e.g. ``3.2s``."""
    return f"{ms / 1000:.1f}s"
